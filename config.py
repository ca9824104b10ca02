import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        data_dir: Path,
        database_url: str,
        timezone: str,
        csrf_secret: str,
        csrf_max_age_hours: int,
        storage_key: str,
        alert_interval_minutes: int,
        goal_reminder_days: int,
        bill_due_days: int,
    ) -> None:
        self.data_dir = data_dir
        self.database_url = database_url
        self.timezone = timezone
        self.csrf_secret = csrf_secret
        self.csrf_max_age_hours = csrf_max_age_hours
        self.storage_key = storage_key
        self.alert_interval_minutes = alert_interval_minutes
        self.goal_reminder_days = goal_reminder_days
        self.bill_due_days = bill_due_days


def _data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _positive_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _data_dir()
    return Settings(
        data_dir=data_dir,
        database_url=os.getenv(
            "FINANCE_DATABASE_URL", f"sqlite:///{data_dir / 'finance.db'}"
        ),
        timezone=os.getenv("FINANCE_TIMEZONE", "UTC"),
        csrf_secret=os.getenv(
            "FINANCE_CSRF_SECRET",
            "5d1f0c7a9b3e48e2a61f7c04d9b2e8a3c6f15e0b7d924a8c3e1f6b0a9d7c2e45",
        ),
        csrf_max_age_hours=_positive_int("FINANCE_CSRF_MAX_AGE_HOURS", 2),
        storage_key=os.getenv("FINANCE_STORAGE_KEY", "finance-tracker-storage"),
        alert_interval_minutes=_positive_int("FINANCE_ALERT_INTERVAL_MINUTES", 60),
        goal_reminder_days=_positive_int("FINANCE_GOAL_REMINDER_DAYS", 7),
        bill_due_days=_positive_int("FINANCE_BILL_DUE_DAYS", 3),
    )
