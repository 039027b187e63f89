import logging
import os
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Zurich"


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        csrf_secret: str,
        salary_payday: int,
        projection_months: int,
        log_level: str,
        scheduler_enabled: bool,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.csrf_secret = csrf_secret
        self.salary_payday = salary_payday
        self.projection_months = projection_months
        self.log_level = log_level
        self.scheduler_enabled = scheduler_enabled


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("CASHFLOW_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _int_env(name: str, default: int, *, low: int, high: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"config_invalid: name={name} value={raw!r} default={default}")
        return default
    if not low <= value <= high:
        logger.warning(f"config_out_of_range: name={name} value={value} default={default}")
        return default
    return value


def _timezone_env() -> str:
    name = os.getenv("CASHFLOW_TIMEZONE", DEFAULT_TIMEZONE)
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"config_invalid: name=CASHFLOW_TIMEZONE value={name!r}")
        return DEFAULT_TIMEZONE
    return name


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "cashflow.db"
    database_url = os.getenv("CASHFLOW_DATABASE_URL", f"sqlite:///{default_db}")
    csrf_secret = os.getenv(
        "CASHFLOW_CSRF_SECRET",
        "3f0c2b9e8d7a4c6b1e5f9a2d8c4b7e1f6a3d9c2e5b8f1a4d7c0e3b6f9a2c5d8e",
    )
    scheduler_raw = os.getenv("CASHFLOW_SCHEDULER_ENABLED", "1").strip().lower()
    return Settings(
        database_url=database_url,
        timezone=_timezone_env(),
        csrf_secret=csrf_secret,
        salary_payday=_int_env("CASHFLOW_SALARY_PAYDAY", 25, low=1, high=28),
        projection_months=_int_env("CASHFLOW_PROJECTION_MONTHS", 12, low=1, high=120),
        log_level=os.getenv("CASHFLOW_LOG_LEVEL", "INFO").upper(),
        scheduler_enabled=scheduler_raw not in {"0", "false", "no", "off"},
    )
