"""Datetime helpers."""

from __future__ import annotations

import os
from datetime import datetime

import pendulum

DEFAULT_TZ = "UTC"


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def utc_now() -> pendulum.DateTime:
    return pendulum.now("UTC")


def parse_timestamp(value: str | datetime | None) -> pendulum.DateTime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return pendulum.instance(value, tz="UTC")
    return pendulum.parse(value, tz="UTC")


def isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()
