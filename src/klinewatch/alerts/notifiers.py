# src/klinewatch/alerts/notifiers.py
from __future__ import annotations
from typing import Optional

import structlog

log = structlog.get_logger("notifier")

class ConsoleNotifier:
    """Sink used when Telegram is not configured: prints alert text to stdout."""
    def __init__(self, prefix: str = "[ALERT]"):
        self.prefix = prefix

    async def send(self, destination: str, text: str, render_options: Optional[dict] = None) -> None:
        print(f"{self.prefix} {text}", flush=True)
        log.debug("console_alert_sent", destination=destination)

    async def send_admin(self, text: str) -> None:
        print(f"[ADMIN] {text}", flush=True)
