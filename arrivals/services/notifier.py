# arrivals/services/notifier.py
import logging
from typing import List, Optional, Protocol, Tuple

import requests

from arrivals.timeutils import to_z

log = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"


class Notifier(Protocol):
    def notify(self, subscriber_id: str, message: str) -> bool: ...


class TelegramNotifier:
    """
    Best-effort delivery through the Telegram Bot API.
    A failed send is logged and reported as False; it never raises.
    """

    def __init__(self, bot_token: str, *, timeout: float = 10.0, clock=None):
        if not bot_token:
            raise ValueError("bot_token is required")
        self._url = f"{TELEGRAM_API}/bot{bot_token}/sendMessage"
        self.timeout = timeout
        self.clock = clock

    def notify(self, subscriber_id: str, message: str) -> bool:
        payload = {"chat_id": subscriber_id, "text": message, "parse_mode": "Markdown"}
        try:
            resp = requests.post(self._url, json=payload, timeout=self.timeout)
            if resp.status_code == 200:
                return True
            detail = f"HTTP {resp.status_code}: {resp.text[:200]}"
        except requests.RequestException as e:
            detail = str(e)
        at = to_z(self.clock.now_ms()) if self.clock else None
        log.error(
            "❌ Notification failed: chat=%s len=%d at=%s: %s",
            subscriber_id, len(message), at, detail,
        )
        return False


class LogNotifier:
    """Used when no bot token is configured: messages only go to the log."""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []

    def notify(self, subscriber_id: str, message: str) -> bool:
        self.sent.append((subscriber_id, message))
        log.info("✉️ [%s] %s", subscriber_id, message.replace("\n", " | "))
        return True


def make_notifier(bot_token: Optional[str], clock=None) -> Notifier:
    if bot_token:
        return TelegramNotifier(bot_token, clock=clock)
    log.warning("BOT_TOKEN not set; notifications will only be logged")
    return LogNotifier()
