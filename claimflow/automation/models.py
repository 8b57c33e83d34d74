"""
Automation Models: структуры данных для движка автоматизаций.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Generic, Literal, TypeVar, get_args

TriggerType = Literal[
    "item_created",
    "item_updated",
    "column_changed",
    "date_reached",
    "status_changed",
    "dependency_completed",
]

ConditionOperator = Literal[
    "equals",
    "not_equals",
    "contains",
    "greater_than",
    "less_than",
    "is_empty",
    "is_not_empty",
]

ConditionLogic = Literal["AND", "OR"]

ExecutionStatus = Literal["pending", "running", "succeeded", "failed"]

FailureReason = Literal["query_failed", "write_failed", "decode_failed"]

TRIGGER_TYPES: tuple[str, ...] = get_args(TriggerType)
CONDITION_OPERATORS: tuple[str, ...] = get_args(ConditionOperator)

T = TypeVar("T")


@dataclass(frozen=True)
class Condition:
    """Одна проверка значения колонки."""

    operator: str
    column_id: str | None = None
    value: Any = None
    logic: str | None = None              # граница ПЕРЕД этим условием

    @staticmethod
    def from_dict(data: dict) -> "Condition":
        return Condition(
            operator=data["operator"],
            column_id=data.get("column_id"),
            value=data.get("value"),
            logic=data.get("logic"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"operator": self.operator}
        if self.column_id is not None:
            data["column_id"] = self.column_id
        if self.value is not None:
            data["value"] = self.value
        if self.logic is not None:
            data["logic"] = self.logic
        return data


@dataclass
class AutomationRule:
    """Правило автоматизации доски: триггер + условия + действия."""

    id: str
    board_id: str
    trigger_type: str
    name: str = ""
    description: str | None = None
    trigger_config: dict[str, Any] = field(default_factory=dict)
    conditions: tuple[Condition, ...] = ()
    actions: list[dict[str, Any]] = field(default_factory=list)  # не интерпретируются движком
    is_active: bool = True
    created_by: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "board_id": self.board_id,
            "name": self.name,
            "description": self.description,
            "trigger_type": self.trigger_type,
            "trigger_config": dict(self.trigger_config),
            "conditions": [c.to_dict() for c in self.conditions],
            "actions": list(self.actions),
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class TriggerEvent:
    """Описание одной мутации записи. Создаётся на вызов, не хранится."""

    board_id: str | None = None
    item_id: str | None = None
    column_id: str | None = None
    old_value: Any = None
    new_value: Any = None
    user_id: str | None = None            # только для атрибуции

    def snapshot(self) -> dict[str, Any]:
        """Глубокая копия события для trigger_data."""
        return asdict(self)


@dataclass
class ExecutionRequest:
    """Запрос на выполнение правила. Статус дальше ведёт внешний executor."""

    id: str
    rule_id: str
    item_id: str | None
    trigger_data: dict[str, Any]
    execution_status: str = "pending"
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "item_id": self.item_id,
            "trigger_data": self.trigger_data,
            "execution_status": self.execution_status,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class StoreResult(Generic[T]):
    """Результат обращения к хранилищу: значение или тег ошибки."""

    value: T | None = None
    error: FailureReason | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None) -> "StoreResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, reason: FailureReason, detail: str = "") -> "StoreResult[T]":
        return cls(error=reason, detail=detail)
