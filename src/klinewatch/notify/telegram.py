from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

import aiohttp
import structlog

log = structlog.get_logger("telegram")

API_BASE = "https://api.telegram.org"

# --------- config & client ----------

@dataclass(slots=True)
class TelegramConfig:
    bot_token: str
    chat_id: str                # alerts destination (personal chat id or group id)
    admin_chat_id: str          # startup / operational messages
    parse_mode: Optional[str] = "Markdown"  # "HTML" or "MarkdownV2" or "Markdown" or None
    timeout_s: float = 8.0
    api_base: str = API_BASE


class TelegramError(RuntimeError):
    def __init__(self, status: int, body: str):
        super().__init__(f"telegram sendMessage failed: HTTP {status}: {body[:200]}")
        self.status = status
        self.body = body


class TelegramSink:
    """
    Notification sink over the Bot API sendMessage endpoint.

    One POST per call, no retries: pacing is the dispatcher's job and a failed
    alert is dropped by the caller. Raises TelegramError on non-200 and lets
    aiohttp errors propagate.
    """
    def __init__(self, cfg: TelegramConfig, session: Optional[aiohttp.ClientSession] = None):
        self.cfg = cfg
        self._session = session
        self._owns_session = session is None

    async def start(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.cfg.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def stop(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None

    async def send(self, destination: str, text: str, render_options: Optional[dict] = None) -> None:
        assert self._session is not None, "start() first"
        url = f"{self.cfg.api_base}/bot{self.cfg.bot_token}/sendMessage"
        payload: dict = {"chat_id": destination, "text": text}
        opts = dict(render_options or {})
        if "parse_mode" not in opts and self.cfg.parse_mode:
            opts["parse_mode"] = self.cfg.parse_mode
        for k, v in opts.items():
            if v is None:
                continue
            # form encoding: booleans as lowercase json literals
            payload[k] = ("true" if v else "false") if isinstance(v, bool) else v

        async with self._session.post(url, data=payload) as resp:
            if resp.status == 200:
                return
            body = await _maybe_text(resp)
            raise TelegramError(resp.status, body)

    async def send_admin(self, text: str) -> None:
        """Best-effort operational message to the admin chat."""
        try:
            await self.send(self.cfg.admin_chat_id, text, {"disable_web_page_preview": True})
        except Exception as e:
            log.warning("telegram_admin_send_failed", err=str(e))


def config_from_env() -> TelegramConfig:
    """
    TOKEN / CHAT_ID are required; ADMIN_CHAT_ID defaults to CHAT_ID.
    Raises RuntimeError if the required variables are missing.
    """
    token = os.getenv("TOKEN") or os.getenv("TELEGRAM_TOKEN")
    chat_id = os.getenv("CHAT_ID") or os.getenv("TELEGRAM_CHAT_ID")
    if not token or not chat_id:
        raise RuntimeError("TOKEN and CHAT_ID must be set for Telegram notifications")
    parse_mode = os.getenv("PARSE_MODE", "Markdown") or None
    return TelegramConfig(
        bot_token=token,
        chat_id=chat_id,
        admin_chat_id=os.getenv("ADMIN_CHAT_ID") or chat_id,
        parse_mode=parse_mode,
        timeout_s=float(os.getenv("TELEGRAM_TIMEOUT_S", "8.0")),
    )


async def _maybe_text(resp: aiohttp.ClientResponse) -> str:
    try:
        return await resp.text()
    except Exception:
        return "<no body>"
