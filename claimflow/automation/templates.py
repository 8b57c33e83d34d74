"""
Automation Templates: готовые правила для типовых переходов между досками.

Sales → Job → Estimate → AR → Commission.
Идентификаторы досок и колонок в шаблонах условные, при создании
правила их заменяют через overrides.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from claimflow.automation.models import AutomationRule
    from claimflow.automation.storage import AutomationStorage


@dataclass(frozen=True)
class AutomationTemplate:
    name: str
    description: str
    trigger_type: str
    trigger_config: dict[str, Any] = field(default_factory=dict)
    conditions: list[dict[str, Any]] = field(default_factory=list)
    actions: list[dict[str, Any]] = field(default_factory=list)


AUTOMATION_TEMPLATES: dict[str, AutomationTemplate] = {
    "sales_to_job": AutomationTemplate(
        name="Create Job from Sales Item",
        description='When a sales item status changes to "Won", create a job',
        trigger_type="status_changed",
        trigger_config={"target_status": "Won"},
        actions=[
            {
                "type": "create_item",
                "config": {"name": "New Job from {{item.name}}", "board_id": "active_jobs"},
            },
        ],
    ),
    "job_to_estimate": AutomationTemplate(
        name="Create Estimate from Job",
        description='When a job status changes to "Ready for Estimate", create an estimate',
        trigger_type="status_changed",
        trigger_config={"target_status": "Ready for Estimate"},
        actions=[
            {
                "type": "create_item",
                "config": {"name": "Estimate for {{item.name}}", "board_id": "estimates"},
            },
            {
                "type": "update_column",
                "config": {"column_id": "job_link_column_id", "value": "{{item.id}}"},
            },
        ],
    ),
    "estimate_to_ar": AutomationTemplate(
        name="Create AR from Approved Estimate",
        description='When estimate status changes to "Approved", create AR item',
        trigger_type="status_changed",
        trigger_config={"target_status": "Approved"},
        actions=[
            {
                "type": "create_item",
                "config": {"name": "AR for {{item.name}}", "board_id": "mitigation_ar"},
            },
        ],
    ),
    "ar_to_commission": AutomationTemplate(
        name="Update Commission from AR",
        description='When AR status changes to "Paid", update commission board',
        trigger_type="status_changed",
        trigger_config={"target_status": "Paid"},
        actions=[
            {
                "type": "create_item",
                "config": {"name": "Commission - {{item.name}}", "board_id": "commissions"},
            },
        ],
    ),
    "auto_assign_estimator": AutomationTemplate(
        name="Auto-assign Estimator",
        description="When job type is set, assign to appropriate estimator",
        trigger_type="column_changed",
        trigger_config={"column_id": "job_type_column_id"},
        conditions=[
            {"column_id": "job_type_column_id", "operator": "equals", "value": "Water Damage"},
        ],
        actions=[
            {
                "type": "assign_person",
                "config": {
                    "people_column_id": "estimator_column_id",
                    "person_id": "water_estimator_id",
                },
            },
        ],
    ),
}


def render_template(
    template: AutomationTemplate, board_id: str, overrides: dict[str, Any]
) -> dict[str, Any]:
    """Собирает поля правила из шаблона и overrides.

    - trigger_config: конфиг шаблона, поверх overrides
    - conditions: column_id заменяется на overrides["<column_id>_override"]
    - actions: config шаблона, поверх overrides, board_id = целевая доска
    """
    conditions = []
    for condition in template.conditions:
        column_id = condition.get("column_id")
        conditions.append({
            **condition,
            "column_id": overrides.get(f"{column_id}_override", column_id),
        })

    actions = [
        {**action, "config": {**action.get("config", {}), **overrides, "board_id": board_id}}
        for action in template.actions
    ]

    return {
        "board_id": board_id,
        "name": template.name,
        "description": template.description,
        "trigger_type": template.trigger_type,
        "trigger_config": {**template.trigger_config, **overrides},
        "conditions": conditions,
        "actions": actions,
    }


async def create_rule_from_template(
    storage: AutomationStorage,
    template_key: str,
    board_id: str,
    overrides: dict[str, Any] | None = None,
    created_by: str | None = None,
) -> AutomationRule:
    """Создаёт активное правило из шаблона."""
    template = AUTOMATION_TEMPLATES.get(template_key)
    if template is None:
        available = ", ".join(AUTOMATION_TEMPLATES)
        raise ValueError(f"Template not found: {template_key}. Available: {available}")

    fields = render_template(template, board_id, overrides or {})
    return await storage.create_rule(**fields, is_active=True, created_by=created_by)
