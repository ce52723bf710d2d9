from collections.abc import Sequence
from typing import Any
from typing import Optional

from shieldcore import dispatcher
from shieldcore import optmanager

CONF_DIR = "~/.shieldcore"
CONF_BASENAME = "settings.yaml"
ALERT_BUBBLE_POSITIONS = ("tl", "tr", "bl", "br")
MAX_ALERT_BUBBLE_TIMEOUT = 30
LOG_LEVELS = ("error", "warn", "info", "alert", "debug")


class Options(optmanager.OptManager):
    def __init__(self, dispatch: dispatcher.Dispatcher | None = None, **kwargs) -> None:
        super().__init__(dispatch)

        # Capability modules
        self.add_option(
            "enable_ad_block",
            bool,
            True,
            "Enable the ad-block capability module.",
            watched=True,
        )
        self.add_option(
            "enable_anti_tracking",
            bool,
            True,
            "Enable the anti-tracking capability module.",
            watched=True,
        )
        self.add_option(
            "enable_human_web",
            bool,
            True,
            """
            Contribute anonymous browsing statistics. Also controls how much
            telemetry the anti-tracking module may collect.
            """,
            watched=True,
        )
        self.add_option(
            "enable_offers",
            bool,
            True,
            """
            Enable the offers and message-center modules. Only honoured while
            the offers A/B test is active.
            """,
            watched=True,
        )
        self.add_option(
            "enable_smart_block",
            bool,
            True,
            "Automatically unblock trackers that break pages.",
            watched=True,
        )
        self.add_option(
            "enable_metrics",
            bool,
            False,
            "Send usage metrics.",
            watched=True,
        )

        # Tracker selection and site lists
        self.add_option(
            "selected_app_ids",
            dict[str, int],
            {},
            "Tracker ids selected for blocking, mapped to 1.",
            watched=True,
        )
        self.add_option(
            "site_whitelist",
            Sequence[str],
            [],
            "Sites on which nothing is blocked.",
            watched=True,
        )
        self.add_option(
            "site_blacklist",
            Sequence[str],
            [],
            "Sites on which every tracker is blocked.",
            watched=True,
        )

        # Display
        self.add_option(
            "show_alert",
            bool,
            True,
            "Show the in-page tracker alert bubble.",
            watched=True,
        )
        self.add_option(
            "is_expert",
            bool,
            False,
            "Use the detailed panel view.",
            watched=True,
        )
        self.add_option(
            "alert_expanded",
            bool,
            False,
            "Show the alert bubble expanded.",
            watched=True,
        )
        self.add_option(
            "alert_bubble_pos",
            str,
            "br",
            "Screen corner of the alert bubble.",
            choices=ALERT_BUBBLE_POSITIONS,
            watched=True,
        )
        self.add_option(
            "alert_bubble_timeout",
            int,
            15,
            "Seconds before the alert bubble hides itself.",
            watched=True,
        )
        self.add_option(
            "language",
            str,
            "en",
            "Interface language.",
        )

        # Account
        self.add_option(
            "login_info",
            dict[str, Any],
            {"logged_in": False, "email": "", "user_id": ""},
            "Login state of the account client.",
            watched=True,
        )

        # Library updates
        self.add_option(
            "enable_autoupdate",
            bool,
            True,
            "Periodically check for tracker library updates.",
        )
        self.add_option(
            "bugs_last_checked",
            int,
            0,
            "Epoch milliseconds of the last successful library version check.",
        )
        self.add_option(
            "bugs_last_updated",
            int,
            0,
            "Epoch milliseconds of the last library update.",
        )

        # Versioning and setup
        self.add_option(
            "previous_version",
            Optional[str],
            None,
            "Version that ran before the current one. Unset on fresh installs.",
        )
        self.add_option(
            "version_history",
            Sequence[str],
            [],
            "Every version that has been installed, oldest first.",
        )
        self.add_option(
            "install_date",
            Optional[str],
            None,
            "Date of the first install, YYYY-MM-DD.",
        )
        self.add_option(
            "install_random_number",
            int,
            0,
            "Random bucket between 1 and 100 assigned on first install.",
        )
        self.add_option(
            "settings_last_imported",
            int,
            0,
            "Epoch milliseconds of the last settings import.",
        )
        self.add_option(
            "setup_step",
            int,
            0,
            "Furthest step reached in the setup flow.",
        )
        self.add_option(
            "setup_path",
            int,
            0,
            "Setup flow variant chosen by the user.",
        )
        self.add_option(
            "setup_block",
            int,
            0,
            "Blocking preset chosen during setup.",
        )

        self.add_option(
            "log_verbosity",
            str,
            "info",
            "Log verbosity.",
            choices=LOG_LEVELS,
        )

        self.update(**kwargs)
