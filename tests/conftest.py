from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

from outage_monitor.config import Settings
from outage_monitor.fetcher import Address
from outage_monitor.raw_status import HouseStatus, RawStatus
from outage_monitor.state import NotificationStore
from outage_monitor.telegram import TelegramConfig

KYIV_WINTER = timezone(timedelta(hours=2))
BOT_TOKEN = "123456:SECRET-TOKEN"


class FakeTelegramApi:
    """Records Bot API calls made through httpx.MockTransport."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []
        self.next_message_id = 100
        self.fail_with: httpx.Response | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        body = json.loads(request.content or b"{}")
        self.calls.append((method, body))
        if self.fail_with is not None:
            return self.fail_with
        if method == "sendMessage":
            self.next_message_id += 1
            message_id = self.next_message_id
        else:
            message_id = body["message_id"]
        return httpx.Response(200, json={"ok": True, "result": {"message_id": message_id, "text": body["text"]}})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    @property
    def methods(self) -> list[str]:
        return [m for m, _ in self.calls]


class FakeFetcher:
    def __init__(self, *results: RawStatus | Exception) -> None:
        self.results = list(results)
        self.calls = 0

    async def fetch_status(self) -> RawStatus:
        self.calls += 1
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def house(sub_type: str = "", start: str | None = None, end: str | None = None, ts: str | None = None) -> RawStatus:
    return RawStatus(house=HouseStatus(sub_type=sub_type, start_date=start, end_date=end), update_timestamp=ts)


@pytest.fixture
def telegram_api() -> FakeTelegramApi:
    return FakeTelegramApi()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        address=Address(city="м. Київ", street="вул. Хрещатик", house="1"),
        shutdowns_page="https://provider.example/ua/shutdowns",
        telegram=TelegramConfig(bot_token=BOT_TOKEN, chat_id="-1001"),
        state_path=tmp_path / "data" / "last_message.json",
        tz=KYIV_WINTER,
    )


@pytest.fixture
def store(settings: Settings) -> NotificationStore:
    return NotificationStore(settings.state_path, address_key=settings.address.key)


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 1, 1, 12, 0, tzinfo=KYIV_WINTER)
