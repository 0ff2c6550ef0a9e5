import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        default_currency: str,
        log_level: str,
        reconcile_hour: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.default_currency = default_currency
        self.log_level = log_level
        self.reconcile_hour = reconcile_hour


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "America/Toronto")
    default_currency = os.getenv("FINANCE_DEFAULT_CURRENCY", "C$")
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    reconcile_hour = int(os.getenv("FINANCE_RECONCILE_HOUR", "3"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        default_currency=default_currency,
        log_level=log_level,
        reconcile_hour=reconcile_hour,
    )
