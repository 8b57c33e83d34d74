import json
import os
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger
from pydantic import TypeAdapter, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _is_known_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def _detect_system_timezone() -> str:
    """Определяет системный timezone."""
    # Сначала смотрим явную переменную TZ (POSIX-формы вроде ":/etc/localtime" пропускаем)
    tz_env = os.environ.get("TZ")
    if tz_env and _is_known_timezone(tz_env):
        return tz_env

    try:
        local_tz = datetime.now().astimezone().tzinfo
        if local_tz is not None and hasattr(local_tz, "key"):
            return local_tz.key
    except Exception:
        pass

    return "UTC"


class Settings(BaseSettings):
    """Конфигурация сервиса автоматизаций."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Timezone (auto = определить из системы, или явно: America/Chicago, UTC, etc.)
    # Используется триггером date_reached для вычисления "сегодня".
    timezone: str = "auto"

    def get_timezone(self) -> ZoneInfo:
        """Возвращает timezone для работы с датами."""
        tz_name = self.timezone if self.timezone != "auto" else _detect_system_timezone()
        if not _is_known_timezone(tz_name):
            logger.warning(f"Unknown timezone {tz_name!r}, falling back to UTC")
            return ZoneInfo("UTC")
        return ZoneInfo(tz_name)

    # Logging
    log_level: str = "DEBUG"

    @field_validator("log_level", mode="before")
    @classmethod
    def _empty_str_to_default(cls, v: object) -> object:
        """Пустая строка из env var → дефолт."""
        if isinstance(v, str) and v.strip() == "":
            return "DEBUG"
        return v

    # HTTP API
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Paths
    data_dir: Path = Path("/data")

    @property
    def db_path(self) -> Path:
        return self.data_dir / "automations.sqlite"


settings = Settings()

# Поля, которые можно менять через HTTP API без рестарта.
# log_level и api_host/api_port исключены: читаются только при старте.
MUTABLE_FIELDS: frozenset[str] = frozenset({
    "timezone",
})

OVERRIDES_FILE = "config_overrides.json"


def _overrides_path() -> Path:
    return settings.data_dir / OVERRIDES_FILE


def get_current_overrides() -> dict[str, object]:
    """Прочитать текущий файл overrides (пустой dict если файла нет)."""
    path = _overrides_path()
    if not path.exists():
        return {}
    return json.loads(path.read_text(encoding="utf-8"))


def save_overrides(overrides: dict[str, object]) -> None:
    """Сохранить overrides в JSON файл."""
    path = _overrides_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(overrides, ensure_ascii=False, indent=2), encoding="utf-8")


def apply_overrides(overrides: dict[str, object]) -> None:
    """Применить overrides к in-memory settings (только mutable-поля, с валидацией типов)."""
    for key, value in overrides.items():
        if key not in MUTABLE_FIELDS:
            continue
        field_info = Settings.model_fields.get(key)
        if field_info is None:
            continue
        validated = TypeAdapter(field_info.annotation).validate_python(value)
        setattr(settings, key, validated)


def load_overrides() -> None:
    """Загрузить overrides из файла и применить к settings."""
    overrides = get_current_overrides()
    if overrides:
        apply_overrides(overrides)
        logger.info(f"Config overrides loaded: {list(overrides.keys())}")
