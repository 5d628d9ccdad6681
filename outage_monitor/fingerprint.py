from __future__ import annotations

import hashlib
import json
import re

from outage_monitor.raw_status import RawStatus

_WS_RE = re.compile(r"\s+")


def fingerprint(raw: RawStatus) -> str:
    """
    Stable hash over the fields that change what a notification says.
    update_timestamp and the provider "type" are not part of the hash.
    """
    house = raw.house
    if house is None:
        fields = {"start_date": None, "end_date": None, "sub_type": None}
    else:
        fields = {
            "start_date": (house.start_date or "").strip() or None,
            "end_date": (house.end_date or "").strip() or None,
            "sub_type": _WS_RE.sub(" ", house.sub_type or "").strip().lower(),
        }
    canonical = json.dumps(fields, ensure_ascii=False, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
