from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp; every datetime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
