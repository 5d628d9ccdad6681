from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Any

import structlog
from playwright.async_api import Error as PlaywrightError, async_playwright

from outage_monitor.raw_status import RawStatus, raw_status_from_payload

logger = structlog.get_logger(__name__)

CSRF_SELECTOR = 'meta[name="csrf-token"]'

# Runs inside the page so the request carries the site's cookies and CSRF session.
_FETCH_HOME_NUM_JS = """
async ({ city, street, updateFact, csrfToken }) => {
  const formData = new URLSearchParams()
  formData.append("method", "getHomeNum")
  formData.append("data[0][name]", "city")
  formData.append("data[0][value]", city)
  formData.append("data[1][name]", "street")
  formData.append("data[1][value]", street)
  formData.append("data[2][name]", "updateFact")
  formData.append("data[2][value]", updateFact)

  const response = await fetch("/ua/ajax", {
    method: "POST",
    headers: {
      "x-requested-with": "XMLHttpRequest",
      "x-csrf-token": csrfToken,
    },
    body: formData,
  })
  const text = await response.text()
  return { status: response.status, text }
}
"""


class FetchError(RuntimeError):
    pass


@dataclass(frozen=True)
class Address:
    city: str
    street: str
    house: str

    @property
    def key(self) -> str:
        return f"{self.city}|{self.street}|{self.house}"


def find_chromium_executable() -> str | None:
    env_path = os.getenv("CHROMIUM_PATH")
    if env_path and Path(env_path).exists():
        return env_path

    candidates = [
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
        "/usr/bin/google-chrome",
        "/usr/bin/google-chrome-stable",
    ]
    for path in candidates:
        if Path(path).exists():
            return path
    # Playwright's bundled Chromium.
    return None


def _launch_args() -> list[str]:
    args = [
        "--no-sandbox",
        "--disable-gpu",
        "--disable-extensions",
        "--no-first-run",
        "--no-default-browser-check",
    ]
    shm_bytes = 0
    try:
        st = os.statvfs("/dev/shm")
        shm_bytes = int(st.f_frsize) * int(st.f_blocks)
    except (AttributeError, OSError):
        shm_bytes = 0
    if shm_bytes < (512 * 1024 * 1024):
        args.insert(1, "--disable-dev-shm-usage")
    return args


def _format_update_fact(now: datetime) -> str:
    return now.strftime("%d.%m.%Y, %H:%M:%S")


def decode_home_num_response(result: Any, *, house: str) -> RawStatus:
    if not isinstance(result, dict):
        raise FetchError(f"Unexpected page evaluation result: {type(result).__name__}")
    status = result.get("status")
    text = result.get("text")
    if not isinstance(status, int) or status // 100 != 2:
        raise FetchError(f"Provider ajax request failed status={status}")
    try:
        payload = json.loads(text or "")
    except ValueError as e:
        raise FetchError(f"Provider returned non-JSON body: {str(text or '')[:200]!r}") from e
    try:
        return raw_status_from_payload(payload, house=house)
    except ValueError as e:
        raise FetchError(str(e)) from e


class PlaywrightStatusFetcher:
    """Fetch the housing-unit status by driving the provider's own page in headless Chromium."""

    def __init__(
        self,
        *,
        shutdowns_page: str,
        address: Address,
        timeout_seconds: float = 60.0,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self.shutdowns_page = shutdowns_page
        self.address = address
        self.timeout_seconds = float(timeout_seconds)
        self.tz = tz

    async def fetch_status(self) -> RawStatus:
        started = time.perf_counter()
        timeout_ms = int(self.timeout_seconds * 1000)
        logger.info("Fetching outage status", page=self.shutdowns_page, house=self.address.house)

        launch_kwargs: dict[str, Any] = {"headless": True, "args": _launch_args()}
        chromium_path = find_chromium_executable()
        if chromium_path:
            launch_kwargs["executable_path"] = chromium_path

        try:
            async with async_playwright() as p:
                browser = await p.chromium.launch(**launch_kwargs)
                try:
                    page = await browser.new_page()
                    await page.goto(self.shutdowns_page, wait_until="load", timeout=timeout_ms)
                    tag = await page.wait_for_selector(CSRF_SELECTOR, state="attached", timeout=timeout_ms)
                    csrf_token = await tag.get_attribute("content") if tag is not None else None
                    if not csrf_token:
                        raise FetchError("CSRF token not found on shutdowns page")
                    result = await page.evaluate(
                        _FETCH_HOME_NUM_JS,
                        {
                            "city": self.address.city,
                            "street": self.address.street,
                            "updateFact": _format_update_fact(datetime.now(self.tz)),
                            "csrfToken": csrf_token,
                        },
                    )
                finally:
                    await browser.close()
        except PlaywrightError as e:
            raise FetchError(f"browser_error: {type(e).__name__}: {e}") from e

        raw = decode_home_num_response(result, house=self.address.house)
        logger.info(
            "Fetched outage status",
            elapsed_ms=round((time.perf_counter() - started) * 1000.0, 3),
            house_found=raw.house is not None,
            update_timestamp=raw.update_timestamp,
        )
        return raw
