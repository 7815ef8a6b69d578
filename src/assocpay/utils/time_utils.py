# src/assocpay/utils/time_utils.py

from datetime import datetime, timezone

def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column in this schema stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def add_years(moment: datetime, years: int) -> datetime:
    """Calendar-year arithmetic; Feb 29 rolls back to Feb 28 in non-leap years."""
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        return moment.replace(year=moment.year + years, day=28)

def add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = moment.day
    while True:
        try:
            return moment.replace(year=year, month=month, day=day)
        except ValueError:
            day -= 1
