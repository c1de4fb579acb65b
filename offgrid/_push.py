from __future__ import annotations

import json
import logging
import time
import typing as tp
from dataclasses import dataclass, field

from offgrid._clients import Client, Clients

logger = logging.getLogger("offgrid.push")

DEFAULT_TITLE = "Seva - Food Donation"
DEFAULT_BODY = "You have a new update"
DEFAULT_TAG = "seva-notification"
DEFAULT_URL = "/"

# Used when the payload cannot be decoded at all.
MALFORMED_PAYLOAD = {"title": "Seva", "body": "New notification"}


@dataclass
class NotificationAction:
    action: str
    title: str
    icon: tp.Optional[str] = None


def _default_actions() -> tp.List[NotificationAction]:
    return [
        NotificationAction("open", "View", "/icons/view.png"),
        NotificationAction("close", "Close", "/icons/close.png"),
    ]


@dataclass
class Notification:
    title: str = DEFAULT_TITLE
    body: str = DEFAULT_BODY
    url: str = DEFAULT_URL
    tag: str = DEFAULT_TAG
    icon: tp.Optional[str] = None
    require_interaction: bool = False
    vibrate: tp.List[int] = field(default_factory=lambda: [200, 100, 200])
    actions: tp.List[NotificationAction] = field(default_factory=_default_actions)
    data: tp.Dict[str, tp.Any] = field(default_factory=dict)


NotificationDisplay = tp.Callable[[Notification], tp.Awaitable[None]]


def _parse_actions(raw: tp.Any) -> tp.List[NotificationAction]:
    if not isinstance(raw, list):
        return _default_actions()
    actions = []
    for item in raw:
        if isinstance(item, dict) and "action" in item:
            actions.append(
                NotificationAction(
                    action=str(item["action"]),
                    title=str(item.get("title", item["action"])),
                    icon=item.get("icon"),
                )
            )
    return actions or _default_actions()


def parse_push_payload(data: tp.Union[bytes, str, None]) -> Notification:
    """
    Turn a push payload into a notification, filling gaps with defaults.

    A payload that is not a JSON object yields the minimal default notification.
    """
    payload: tp.Dict[str, tp.Any] = {}
    if data:
        try:
            decoded = json.loads(data)
            if not isinstance(decoded, dict):
                raise ValueError(f"Expected a JSON object, got {type(decoded).__name__}")
            payload = decoded
        except ValueError as exc:
            logger.error(f"Failed to parse push data: {exc}")
            payload = dict(MALFORMED_PAYLOAD)

    url = str(payload.get("url") or DEFAULT_URL)
    return Notification(
        title=str(payload.get("title") or DEFAULT_TITLE),
        body=str(payload.get("body") or DEFAULT_BODY),
        url=url,
        tag=str(payload.get("tag") or DEFAULT_TAG),
        icon=payload.get("icon"),
        require_interaction=bool(payload.get("requireInteraction", False)),
        actions=_parse_actions(payload.get("actions")),
        data={"url": url, "timestamp": int(time.time() * 1000), **payload},
    )


async def route_click(notification: Notification, action: tp.Optional[str], clients: Clients) -> tp.Optional[Client]:
    """
    Focus the open instance showing the notification's URL, or open a new one.
    """
    if action == "close":
        return None
    url = str(notification.data.get("url") or notification.url or DEFAULT_URL)
    return await clients.focus_or_open(url)
