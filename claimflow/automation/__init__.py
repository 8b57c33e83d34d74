"""
Automation Engine: правила автоматизации досок.

Событие мутации → активные правила доски → триггер → условия → ExecutionRequest.
Выполнение действий (executor) находится вне движка.
"""

from claimflow.automation.models import (
    AutomationRule,
    Condition,
    ExecutionRequest,
    StoreResult,
    TriggerEvent,
)
from claimflow.automation.conditions import evaluate_conditions, evaluate_value_condition
from claimflow.automation.triggers import should_fire
from claimflow.automation.storage import AutomationStorage, get_storage
from claimflow.automation.dispatcher import TriggerDispatcher, get_dispatcher
from claimflow.automation.templates import AUTOMATION_TEMPLATES, create_rule_from_template
from claimflow.automation.hooks import (
    on_column_values_changed,
    on_item_created,
    on_item_updated,
    on_status_changed,
)

__all__ = [
    "AutomationRule",
    "Condition",
    "ExecutionRequest",
    "StoreResult",
    "TriggerEvent",
    "evaluate_conditions",
    "evaluate_value_condition",
    "should_fire",
    "AutomationStorage",
    "get_storage",
    "TriggerDispatcher",
    "get_dispatcher",
    "AUTOMATION_TEMPLATES",
    "create_rule_from_template",
    "on_item_created",
    "on_item_updated",
    "on_status_changed",
    "on_column_values_changed",
]
