"""
Trigger Predicate Engine: сработал ли триггер правила для события.

Условия правила здесь не проверяются, только trigger_type + trigger_config.
Отсутствующий обязательный параметр = триггер не сработал (без исключений).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from loguru import logger

from claimflow.config import settings
from claimflow.automation.models import TriggerEvent
from claimflow.automation.values import strict_equals

if TYPE_CHECKING:
    from claimflow.automation.storage import AutomationStorage


def local_today() -> date:
    """Текущая дата (без времени) в timezone сервиса."""
    return datetime.now(settings.get_timezone()).date()


async def should_fire(
    trigger_type: str,
    trigger_config: dict[str, Any],
    event: TriggerEvent,
    storage: AutomationStorage,
    today: date | None = None,
) -> bool:
    """
    Проверяет, сработал ли триггер.

    Args:
        trigger_type: тип триггера правила
        trigger_config: параметры триггера правила
        event: событие мутации
        storage: нужен только для dependency_completed
        today: текущая дата (по умолчанию local_today())
    """
    config = trigger_config if isinstance(trigger_config, dict) else {}

    if trigger_type == "item_created":
        return event.item_id is not None

    if trigger_type == "item_updated":
        return event.item_id is not None and not strict_equals(
            event.old_value, event.new_value
        )

    if trigger_type == "column_changed":
        if not event.column_id or not event.item_id:
            return False
        # Без фильтра срабатывает любая колонка
        if config.get("column_id"):
            return event.column_id == config["column_id"]
        return True

    if trigger_type == "status_changed":
        if not event.item_id:
            return False
        target_status = config.get("target_status")
        if target_status:
            return strict_equals(event.new_value, target_status)
        return not strict_equals(event.old_value, event.new_value)

    if trigger_type == "date_reached":
        target = _parse_date(config.get("date"))
        if target is None:
            return False
        # >= а не ==: после даты срабатывает на каждом вызове
        return (today or local_today()) >= target

    if trigger_type == "dependency_completed":
        if not event.item_id:
            return False
        dependency_item_id = config.get("dependency_item_id")
        if not dependency_item_id:
            return False
        return await _dependency_not_archived(storage, dependency_item_id)

    return False


async def _dependency_not_archived(
    storage: AutomationStorage, dependency_item_id: str
) -> bool:
    # Срабатывает, когда зависимость НЕ в архиве (is_archived строго False)
    result = await storage.get_item_archived(dependency_item_id)
    if not result.ok:
        logger.error(
            f"Dependency lookup failed for item {dependency_item_id}: "
            f"{result.error} {result.detail}"
        )
        return False
    return result.value is False


def _parse_date(raw: Any) -> date | None:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str) or not raw:
        return None
    try:
        # "2025-01-01" или полный ISO timestamp: берём только дату
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None
