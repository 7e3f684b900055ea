from datetime import UTC, datetime, timedelta


def seconds_until_hour(hour: int, now: datetime | None = None) -> float:
    """Seconds from now until the next occurrence of hour:00 UTC."""
    now = now or datetime.now(UTC)
    target = now.replace(hour=hour % 24, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()
