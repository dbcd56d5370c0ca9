import datetime


def utcnow() -> datetime.datetime:
    """Current UTC time as a naive datetime, the form every timestamp column stores."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def to_utc(value: datetime.datetime) -> datetime.datetime:
    """Normalize an incoming timestamp to naive UTC. Naive input is taken to be UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
