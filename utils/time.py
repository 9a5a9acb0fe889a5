from datetime import datetime, timezone


def utc_now() -> datetime:
    """Naive UTC timestamp, comparable with the DateTime columns written by the store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
