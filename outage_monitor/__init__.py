"""Electricity outage monitor: one address, one live Telegram message."""
