"""
TriggerDispatcher: единая точка входа движка автоматизаций.

Получает событие мутации, загружает активные правила доски,
для каждого проверяет триггер и условия и ставит ExecutionRequest
в очередь. Сами действия выполняет внешний executor.

Политика ошибок:
- ошибка загрузки правил → ни одно правило не срабатывает
- ошибка записи ExecutionRequest → лог, остальные правила продолжаются
Вызывающему ошибки не пробрасываются: мутация к этому моменту уже сохранена.

Дедупликации нет: два одинаковых события подряд дают два ExecutionRequest.
"""

from __future__ import annotations

from datetime import date

from loguru import logger

from claimflow.automation.conditions import evaluate_conditions
from claimflow.automation.models import TriggerEvent
from claimflow.automation.storage import AutomationStorage, get_storage
from claimflow.automation.triggers import should_fire


class TriggerDispatcher:
    """Сопоставляет события мутаций с правилами автоматизации."""

    def __init__(self, storage: AutomationStorage) -> None:
        self._storage = storage

    async def dispatch(
        self, trigger_type: str, event: TriggerEvent, today: date | None = None
    ) -> None:
        """
        Обрабатывает событие.

        1. Без board_id: warning и выход
        2. Загружает активные правила (board_id, trigger_type)
        3. Для каждого: триггер → условия → запись ExecutionRequest
        """
        if not event.board_id:
            logger.warning(f"No board_id in {trigger_type} event, cannot fire triggers")
            return

        lookup = await self._storage.list_active(event.board_id, trigger_type)
        if not lookup.ok:
            logger.error(
                f"Error fetching automations for board {event.board_id}: "
                f"{lookup.error} {lookup.detail}"
            )
            return

        for rule in lookup.value or []:
            fired = await should_fire(
                trigger_type, rule.trigger_config, event, self._storage, today=today
            )
            if not fired:
                logger.debug(f"Rule [{rule.id}]: trigger {trigger_type} not fired")
                continue

            passed = await evaluate_conditions(rule.conditions, event.item_id, self._storage)
            if not passed:
                logger.debug(f"Rule [{rule.id}]: conditions not met")
                continue

            await self._queue_execution(rule.id, event)

    async def _queue_execution(self, rule_id: str, event: TriggerEvent) -> None:
        result = await self._storage.enqueue_execution(
            rule_id, event.item_id, event.snapshot()
        )
        if not result.ok:
            logger.error(
                f"Error queueing automation execution for rule [{rule_id}]: "
                f"{result.error} {result.detail}"
            )
            return
        logger.info(f"Automation execution queued [{result.value.id}] for rule [{rule_id}]")


# Singleton
_dispatcher: TriggerDispatcher | None = None


def get_dispatcher() -> TriggerDispatcher:
    """Возвращает глобальный dispatcher поверх глобального storage."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = TriggerDispatcher(get_storage())
    return _dispatcher
