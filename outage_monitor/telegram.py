from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import httpx


@dataclass(frozen=True)
class TelegramConfig:
    bot_token: str
    chat_id: str
    parse_mode: str = "HTML"
    timeout_seconds: float = 15.0


class TransportError(RuntimeError):
    def __init__(self, message: str, *, response: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.response = response or {}


def redact_telegram_response(data: dict) -> str:
    safe = {"ok": data.get("ok")}
    if isinstance(data.get("result"), dict):
        safe["result"] = {"message_id": data["result"].get("message_id")}
    if data.get("description"):
        safe["description"] = data.get("description")
    if data.get("error"):
        safe["error"] = data.get("error")
    return json.dumps(safe, ensure_ascii=False)


class TelegramTransport:
    """sendMessage / editMessageText for the single live message. Failures raise TransportError."""

    def __init__(self, client: httpx.AsyncClient, config: TelegramConfig) -> None:
        self.client = client
        self.config = config

    def _redact(self, text: str) -> str:
        if self.config.bot_token:
            return text.replace(self.config.bot_token, "<redacted>")
        return text

    async def _call(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"https://api.telegram.org/bot{self.config.bot_token}/{method}"
        try:
            resp = await self.client.post(url, json=payload, timeout=self.config.timeout_seconds)
        except httpx.HTTPError as e:
            msg = self._redact(f"{type(e).__name__}: {e}")
            raise TransportError(f"telegram {method} failed: {msg}", response={"ok": False, "error": msg}) from e

        try:
            data = resp.json()
        except ValueError:
            data = {"ok": False, "error": f"non-JSON response (HTTP {resp.status_code})"}
        if not isinstance(data, dict):
            data = {"ok": False, "error": f"unexpected response (HTTP {resp.status_code})"}

        if resp.status_code // 100 != 2 or not data.get("ok"):
            raise TransportError(
                f"telegram {method} not acknowledged: HTTP {resp.status_code} {redact_telegram_response(data)}",
                response=data,
            )
        return data

    @staticmethod
    def _message_id(method: str, data: dict[str, Any]) -> str:
        result = data.get("result")
        message_id = result.get("message_id") if isinstance(result, dict) else None
        if message_id is None:
            raise TransportError(f"telegram {method} response has no message_id", response=data)
        return str(message_id)

    async def send_message(self, text: str) -> str:
        payload = {"chat_id": self.config.chat_id, "text": text, "parse_mode": self.config.parse_mode}
        data = await self._call("sendMessage", payload)
        return self._message_id("sendMessage", data)

    async def edit_message(self, message_id: str, text: str) -> str:
        payload = {
            "chat_id": self.config.chat_id,
            "message_id": int(message_id) if str(message_id).isdigit() else message_id,
            "text": text,
            "parse_mode": self.config.parse_mode,
        }
        data = await self._call("editMessageText", payload)
        return self._message_id("editMessageText", data)
