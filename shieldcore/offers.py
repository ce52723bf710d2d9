"""
Bridge between the offers modules and the notification feed.

Once the offers module is enabled, offers pushed through the message center
are turned into notification entries. User reactions to those entries are
reported back to the offers core.
"""

from __future__ import annotations

import logging
from typing import Any

from shieldcore import exceptions
from shieldcore import module
from shieldcore import services

logger = logging.getLogger(__name__)

HANDLER_ID = "ghostery"

OFFER_ACTIONS = {
    "offerShown": "offer_shown",
    "closeButton": "offer_closed",
    "link": "offer_ca_action",
}


def is_offer(cmp_data: Any) -> bool:
    return (
        isinstance(cmp_data, dict)
        and cmp_data.get("origin") == "cliqz"
        and cmp_data.get("type") == "offers"
    )


def cmp_entry(offer_data: dict[str, Any]) -> dict[str, Any]:
    template = offer_data["ui_info"]["template_data"]
    return {
        "id": offer_data["display_id"],
        "Message": template["title"],
        "Link": template["call_to_action"]["url"],
        "LinkText": template["call_to_action"]["text"],
        "type": "offers",
        "origin": "cliqz",
        "data": {
            "offer_info": {
                "offer_id": offer_data["offer_id"],
                "offer_urls": offer_data["rule_info"]["url"],
            }
        },
    }


class OfferBridge:
    def __init__(self, host: module.ModuleHost, cmp: services.CMP) -> None:
        self.host = host
        self.cmp = cmp

    def install(self) -> None:
        if offers := self.host.modules.get(module.OFFERS):
            offers.on("enabled", self.register)

    def register(self, _offers: module.CapabilityModule) -> None:
        try:
            self.host.modules[module.MESSAGE_CENTER].action(
                "registerMessageHandler", HANDLER_ID, self.on_message
            )
        except (KeyError, exceptions.ModuleError) as e:
            logger.warning(f"Cannot receive offers: {e}")

    def on_message(self, msg: dict[str, Any]) -> None:
        self.host.modules[module.MESSAGE_CENTER].action("hideMessage", HANDLER_ID, msg)
        msg["Dismiss"] = 1
        data = msg.get("data") or {}
        if (
            msg.get("origin") == "offers-core"
            and msg.get("type") == "push-offer"
            and data.get("offer_data")
        ):
            self.cmp.entries.append(cmp_entry(data["offer_data"]))

    def report(self, message: dict[str, Any]) -> bool:
        """
        Forward a user reaction to an offer notification to the offers core.
        Returns False for reactions we do not know about.
        """
        offer_id = message["cmp_data"]["data"]["offer_info"]["offer_id"]
        try:
            action_id = OFFER_ACTIONS[message.get("reason")]
        except KeyError:
            logger.info(f"Unknown offer message reason: {message.get('reason')}")
            return False
        signal = {
            "origin": HANDLER_ID,
            "type": "offer-action-signal",
            "data": {"action_id": action_id, "offer_id": offer_id},
        }
        self.host.modules[module.CORE].action("publishEvent", "offers-recv-ch", signal)
        return True
