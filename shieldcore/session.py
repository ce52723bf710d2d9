from dataclasses import dataclass
from dataclasses import field
from typing import Any


@dataclass
class Session:
    """
    Process-lifetime state that is not a user setting and is never persisted.
    """

    just_installed: bool = False
    just_upgraded: bool = False
    hotfix: bool = False
    upgraded_from_legacy: bool = False
    paused_blocking: bool = False
    let_redirects_through: bool = False
    blocked_redirect_data: dict[str, Any] = field(default_factory=dict)
    init_complete: bool = False
