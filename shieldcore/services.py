"""
Interfaces of the external collaborators the orchestration layer talks to.
Implementations are injected into Master through a Services instance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from typing import Protocol


class Messenger(Protocol):
    def send_message(self, tab_id: int, name: str, message: Any = None) -> None:
        """Send a message to the content scripts of a tab."""

    def send_message_to_panel(self, name: str, message: Any = None) -> None: ...


class Tabs(Protocol):
    async def get_active_tab(self) -> dict[str, Any] | None:
        """The active tab as {"id": ..., "url": ...}, or None."""

    async def get_tab(self, tab_id: int) -> dict[str, Any] | None: ...

    async def open_new_tab(self, url: str, become_active: bool = True) -> None: ...

    async def update_tab(self, tab_id: int, url: str) -> None: ...

    async def remove_tabs(self, *tab_ids: int) -> None: ...

    async def query_tabs(self, url: str, active: bool = True) -> list[dict[str, Any]]: ...

    async def inject_notifications(self, tab_id: int) -> bool:
        """Inject the notification scripts into a tab; True on success."""


class TabInfo(Protocol):
    def get_tab_info(self, tab_id: int, prop: str) -> Any: ...

    def set_tab_info(self, tab_id: int, prop: str, value: Any) -> None: ...


class Database(Protocol):
    version: int | None

    async def init(self) -> None: ...

    async def update(self, version: int) -> bool:
        """Fetch the list if `version` is newer than ours; True if it was updated."""


class ClickToPlay(Database, Protocol):
    def allow_once(self, app_ids: list[int], tab_id: int) -> None: ...

    def allow_always(self, app_id: int, host: str) -> None: ...


class TrackerDatabase(Database, Protocol):
    apps: dict[str, dict[str, Any]]
    none_selected: bool
    all_selected: bool

    def categories(self, tab_id: int) -> list[dict[str, Any]]: ...


class Accounts(Protocol):
    async def pull_user_settings(self) -> dict[str, Any]: ...

    async def push_user_settings(self, settings: dict[str, Any]) -> None: ...

    async def get_login_info(self) -> dict[str, Any]: ...

    async def set_login_info(self, info: dict[str, Any]) -> dict[str, Any]: ...

    async def set_login_info_from_auth_cookie(self, url: str) -> None: ...

    async def send_verification_email(self) -> Any: ...


class PanelData(Protocol):
    def init(self) -> None:
        """Rebuild the panel's projection of the settings."""

    def get(self, view: str, tab: dict[str, Any] | None) -> dict[str, Any]: ...

    def set(self, data: dict[str, Any]) -> None: ...


class CMP(Protocol):
    entries: list[dict[str, Any]]

    async def fetch(self) -> None: ...


@dataclass
class Services:
    messenger: Messenger
    tabs: Tabs
    tab_info: TabInfo
    click_to_play: ClickToPlay
    tracker_db: TrackerDatabase
    compatibility_db: Database
    surrogate_db: Database
    accounts: Accounts
    panel_data: PanelData
    cmp: CMP

    def databases(self) -> list[Database]:
        return [
            self.click_to_play,
            self.tracker_db,
            self.compatibility_db,
            self.surrogate_db,
        ]
