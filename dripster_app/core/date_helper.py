from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def rental_days(start_date: date, end_date: date) -> int:
    return (end_date - start_date).days
