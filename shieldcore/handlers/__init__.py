from shieldcore.handlers import click2play
from shieldcore.handlers import notifications
from shieldcore.handlers import pages
from shieldcore.handlers import universal


def default_handlers(master):
    return [
        pages.PlatformPages(master),
        pages.GhosteryDotCom(master),
        pages.PagePerformance(master),
        pages.Purplebox(master),
        notifications.Notifications(master),
        click2play.ClickToPlay(master),
        click2play.BlockedRedirect(master),
        universal.Universal(master),
    ]
