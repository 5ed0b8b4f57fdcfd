from datetime import datetime, timezone

from src.specs.common.datetime_utils import format_iso_datetime


def utc_now() -> str:
    return format_iso_datetime(datetime.now(timezone.utc))
