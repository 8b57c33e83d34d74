"""
Mutation hooks: вызываются обработчиками мутаций ПОСЛЕ сохранения.

Каждый hook собирает TriggerEvent и передаёт его dispatcher'у.
Ошибка автоматизации не должна ломать уже выполненную мутацию:
все исключения логируются и гасятся здесь.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from loguru import logger

from claimflow.automation.models import TriggerEvent

if TYPE_CHECKING:
    from claimflow.automation.dispatcher import TriggerDispatcher
    from claimflow.automation.storage import AutomationStorage


async def _safe_dispatch(
    dispatcher: TriggerDispatcher, trigger_type: str, event: TriggerEvent
) -> None:
    try:
        await dispatcher.dispatch(trigger_type, event)
    except Exception as e:
        logger.error(f"Error firing {trigger_type} automation triggers: {e}")


async def on_item_created(
    dispatcher: TriggerDispatcher,
    item_id: str,
    board_id: str,
    user_id: str | None = None,
) -> None:
    await _safe_dispatch(
        dispatcher,
        "item_created",
        TriggerEvent(board_id=board_id, item_id=item_id, user_id=user_id),
    )


async def on_item_updated(
    dispatcher: TriggerDispatcher,
    item_id: str,
    board_id: str,
    user_id: str | None = None,
    old_value: Any = None,
    new_value: Any = None,
) -> None:
    await _safe_dispatch(
        dispatcher,
        "item_updated",
        TriggerEvent(
            board_id=board_id,
            item_id=item_id,
            old_value=old_value,
            new_value=new_value,
            user_id=user_id,
        ),
    )


async def on_status_changed(
    dispatcher: TriggerDispatcher,
    item_id: str,
    board_id: str,
    old_status: Any,
    new_status: Any,
    user_id: str | None = None,
) -> None:
    await _safe_dispatch(
        dispatcher,
        "status_changed",
        TriggerEvent(
            board_id=board_id,
            item_id=item_id,
            old_value=old_status,
            new_value=new_status,
            user_id=user_id,
        ),
    )


async def on_column_values_changed(
    dispatcher: TriggerDispatcher,
    storage: AutomationStorage,
    item_id: str,
    values: list[dict[str, Any]],
    user_id: str | None = None,
) -> None:
    """Одно событие column_changed на каждое изменённое значение.

    values: [{"column_id": ..., "value": ...}, ...]
    """
    try:
        board_id = await storage.get_item_board(item_id)
    except Exception as e:
        logger.error(f"Error resolving board for item {item_id}: {e}")
        return

    if board_id is None:
        logger.warning(f"Item {item_id} not found, column_changed triggers skipped")
        return

    for val in values:
        await _safe_dispatch(
            dispatcher,
            "column_changed",
            TriggerEvent(
                board_id=board_id,
                item_id=item_id,
                column_id=val.get("column_id"),
                new_value=val.get("value"),
                user_id=user_id,
            ),
        )
