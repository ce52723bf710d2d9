from dataclasses import dataclass

LEGACY_BROWSERS = frozenset({"edge"})


@dataclass(frozen=True)
class BrowserInfo:
    """
    Facts about the host platform. These decide which capability modules are
    available at all, independent of user settings.
    """

    name: str = "chrome"
    display_name: str = "Chrome"
    version: str = ""
    os: str = "linux"
    bundled: bool = False
    """Shipped inside a browser that manages the capability modules itself."""

    @property
    def is_legacy(self) -> bool:
        """
        Legacy platforms lose response callbacks when several host instances
        run at once and have no telemetry or offers modules.
        """
        return self.name in LEGACY_BROWSERS

    @property
    def is_android(self) -> bool:
        return self.os == "android"
