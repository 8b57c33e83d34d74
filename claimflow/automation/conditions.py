"""
Condition Evaluator: решает, выполнены ли условия правила.

Одно условие = оператор + значение колонки элемента + ожидаемое значение.
Условия правила собираются в группы по маркерам logic (см. evaluate_conditions).
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Sequence

from loguru import logger

from claimflow.automation.models import Condition
from claimflow.automation.values import (
    is_empty,
    is_not_empty,
    is_truthy,
    strict_equals,
    stringify,
    to_number,
)

if TYPE_CHECKING:
    from claimflow.automation.storage import AutomationStorage


def evaluate_value_condition(
    operator: str, actual_value: Any, expected_value: Any = None
) -> bool:
    """Применяет оператор к фактическому и ожидаемому значению.

    Неизвестный оператор и несравнимые типы дают False, не исключение.
    """
    if operator == "equals":
        return strict_equals(actual_value, expected_value) or (
            stringify(actual_value) == stringify(expected_value)
        )

    if operator == "not_equals":
        return not strict_equals(actual_value, expected_value) and (
            stringify(actual_value) != stringify(expected_value)
        )

    if operator == "contains":
        if isinstance(actual_value, str) and isinstance(expected_value, str):
            return expected_value.lower() in actual_value.lower()
        return False

    if operator in ("greater_than", "less_than"):
        actual = to_number(actual_value)
        expected = to_number(expected_value)
        if actual is None or expected is None:
            return False
        if operator == "greater_than":
            return actual > expected
        return actual < expected

    if operator == "is_empty":
        return is_empty(actual_value)

    if operator == "is_not_empty":
        return is_not_empty(actual_value)

    return False


def pick_field_value(column_value: dict[str, Any] | None) -> Any:
    """Выбирает значение колонки: value → text_value → numeric_value.

    Ложное значение ("", 0, False, None) уступает следующей проекции,
    numeric_value возвращается как есть.
    """
    if not column_value:
        return None
    for key in ("value", "text_value"):
        candidate = column_value.get(key)
        if is_truthy(candidate):
            return candidate
    return column_value.get("numeric_value")


async def resolve_field_value(
    storage: AutomationStorage, item_id: str | None, column_id: str | None
) -> Any:
    """Значение колонки элемента. Ошибка чтения = None (условие просто не совпадёт)."""
    if not column_id or not item_id:
        return None

    result = await storage.get_field_value(item_id, column_id)
    if not result.ok:
        logger.error(
            f"Field lookup failed for item {item_id}, column {column_id}: "
            f"{result.error} {result.detail}"
        )
        return None
    return pick_field_value(result.value)


async def evaluate_condition(
    condition: Condition, item_id: str | None, storage: AutomationStorage
) -> bool:
    """Проверяет одно условие против значения колонки элемента."""
    if not condition.column_id:
        # Условие без колонки: сравнивается с null
        return evaluate_value_condition(condition.operator, None, condition.value)

    actual = await resolve_field_value(storage, item_id, condition.column_id)
    return evaluate_value_condition(condition.operator, actual, condition.value)


def group_conditions(conditions: Sequence[Condition]) -> list[list[Condition]]:
    """Режет последовательность условий на группы.

    Новая группа начинается, когда у условия есть logic, он отличается
    от текущего и текущая группа не пуста. Само условие открывает новую группу.
    """
    groups: list[list[Condition]] = []
    current_group: list[Condition] = []
    current_logic = "AND"

    for condition in conditions:
        if condition.logic and condition.logic != current_logic and current_group:
            groups.append(current_group)
            current_group = []
            current_logic = condition.logic
        current_group.append(condition)

    if current_group:
        groups.append(current_group)
    return groups


async def evaluate_conditions(
    conditions: Sequence[Condition], item_id: str | None, storage: AutomationStorage
) -> bool:
    """
    Проверяет все условия правила.

    1. Пустой список → True (правило без условий проходит всегда)
    2. Внутри группы всегда AND
    3. Между группами OR, если хоть одно условие помечено OR, иначе AND
    """
    if not conditions:
        return True

    groups = group_conditions(conditions)

    async def _evaluate_group(group: list[Condition]) -> bool:
        results = await asyncio.gather(
            *(evaluate_condition(c, item_id, storage) for c in group)
        )
        return all(results)

    group_results = await asyncio.gather(*(_evaluate_group(g) for g in groups))

    has_or_logic = any(c.logic == "OR" for c in conditions)
    if has_or_logic:
        return any(group_results)
    return all(group_results)
