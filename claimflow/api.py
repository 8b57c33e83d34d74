"""
Claimflow HTTP API: управление правилами автоматизации и приём событий.

Авторизация: Bearer {API_SECRET_KEY} (shared secret с веб-приложением).
Обработчики мутаций веб-приложения шлют события в POST /automations/dispatch.
"""

import asyncio
import hmac
import os
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import aiosqlite
from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

from claimflow.automation.dispatcher import TriggerDispatcher
from claimflow.automation.hooks import on_column_values_changed
from claimflow.automation.models import ConditionLogic, ConditionOperator, TriggerEvent, TriggerType
from claimflow.automation.storage import AutomationStorage, get_storage
from claimflow.automation.templates import AUTOMATION_TEMPLATES, create_rule_from_template
from claimflow.config import (
    MUTABLE_FIELDS,
    apply_overrides,
    get_current_overrides,
    save_overrides,
    settings,
)


def _resolve_field_type(field_name: str) -> str:
    """Определить строковый тип поля Settings для API-ответа."""
    annotation = type(settings).model_fields[field_name].annotation
    if annotation is int:
        return "int"
    if annotation is Path:
        return "path"
    return "str"


def _get_api_secret() -> str:
    """API_SECRET_KEY из env var."""
    return os.environ.get("API_SECRET_KEY", "")


def _verify_secret(authorization: str) -> None:
    """Проверка Bearer-токена: constant-time сравнение."""
    secret = _get_api_secret()
    if not secret:
        raise HTTPException(status_code=503, detail="API_SECRET_KEY not configured")
    expected = f"Bearer {secret}"
    if not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")


class ConditionBody(BaseModel):
    operator: ConditionOperator
    column_id: str | None = None
    value: Any = None
    logic: ConditionLogic | None = None


class CreateAutomation(BaseModel):
    """Новое правило автоматизации."""

    board_id: str
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    is_active: bool = True
    trigger_type: TriggerType
    trigger_config: dict[str, Any] = Field(default_factory=dict)
    conditions: list[ConditionBody] = Field(default_factory=list)
    actions: list[dict[str, Any]] = Field(min_length=1)


class CreateFromTemplate(BaseModel):
    board_id: str
    overrides: dict[str, Any] = Field(default_factory=dict)


class PatchAutomation(BaseModel):
    is_active: bool


class DispatchContext(BaseModel):
    board_id: str
    item_id: str | None = None
    column_id: str | None = None
    old_value: Any = None
    new_value: Any = None
    user_id: str | None = None


class DispatchBody(BaseModel):
    """Событие мутации от веб-приложения."""

    trigger_type: TriggerType
    context: DispatchContext


class ColumnValueBody(BaseModel):
    column_id: str
    value: Any = None
    text_value: str | None = None
    numeric_value: float | None = None


class UpdateColumnValues(BaseModel):
    """Новые значения колонок элемента."""

    values: list[ColumnValueBody] = Field(min_length=1)


class PatchConfig(BaseModel):
    """Partial update мутабельных полей."""

    timezone: str | None = None


# Гарантируем синхронность PatchConfig и MUTABLE_FIELDS: упадёт при импорте если разойдутся
assert set(PatchConfig.model_fields.keys()) == MUTABLE_FIELDS, (
    f"PatchConfig fields {set(PatchConfig.model_fields)} != MUTABLE_FIELDS {MUTABLE_FIELDS}"
)

# Lock для атомарности read-modify-write overrides
_config_lock = asyncio.Lock()


def _build_config_response() -> dict[str, Any]:
    """Построить ответ GET /config с флагом mutable."""
    result: dict[str, Any] = {}

    for field_name in type(settings).model_fields:
        value = getattr(settings, field_name)
        if isinstance(value, Path):
            value = str(value)

        result[field_name] = {
            "value": value,
            "mutable": field_name in MUTABLE_FIELDS,
            "type": _resolve_field_type(field_name),
        }

    return result


def create_app(storage: AutomationStorage | None = None) -> FastAPI:
    """Создать FastAPI-приложение."""
    app = FastAPI(title="Claimflow Automations API", docs_url=None, redoc_url=None)
    store = storage or get_storage()
    dispatcher = TriggerDispatcher(store)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    # =========================================================================
    # Automations
    # =========================================================================

    @app.get("/automations")
    async def list_automations(
        board_id: str,
        authorization: str = Header(...),
    ) -> dict[str, Any]:
        _verify_secret(authorization)
        rules = await store.list_rules(board_id)
        return {"automations": [r.to_dict() for r in rules]}

    @app.post("/automations", status_code=201)
    async def create_automation(
        body: CreateAutomation,
        authorization: str = Header(...),
        x_user_id: str | None = Header(None),
    ) -> dict[str, Any]:
        _verify_secret(authorization)
        try:
            rule = await store.create_rule(
                board_id=body.board_id,
                name=body.name,
                description=body.description,
                trigger_type=body.trigger_type,
                trigger_config=body.trigger_config,
                conditions=[c.model_dump(exclude_none=True) for c in body.conditions],
                actions=body.actions,
                is_active=body.is_active,
                created_by=x_user_id,
            )
        except aiosqlite.Error as e:
            raise HTTPException(status_code=500, detail=f"Database error: {e}")
        return rule.to_dict()

    @app.get("/automations/templates")
    async def list_templates(
        authorization: str = Header(...),
    ) -> dict[str, Any]:
        _verify_secret(authorization)
        return {
            "templates": [
                {
                    "key": key,
                    "name": t.name,
                    "description": t.description,
                    "trigger_type": t.trigger_type,
                }
                for key, t in AUTOMATION_TEMPLATES.items()
            ]
        }

    @app.post("/automations/templates/{template_key}", status_code=201)
    async def create_from_template(
        template_key: str,
        body: CreateFromTemplate,
        authorization: str = Header(...),
        x_user_id: str | None = Header(None),
    ) -> dict[str, Any]:
        _verify_secret(authorization)
        if template_key not in AUTOMATION_TEMPLATES:
            raise HTTPException(status_code=404, detail=f"Template not found: {template_key}")
        try:
            rule = await create_rule_from_template(
                store, template_key, body.board_id, body.overrides, created_by=x_user_id
            )
        except aiosqlite.Error as e:
            raise HTTPException(status_code=500, detail=f"Database error: {e}")
        return rule.to_dict()

    @app.patch("/automations/{rule_id}")
    async def patch_automation(
        rule_id: str,
        body: PatchAutomation,
        authorization: str = Header(...),
    ) -> dict[str, Any]:
        _verify_secret(authorization)
        if not await store.set_active(rule_id, body.is_active):
            raise HTTPException(status_code=404, detail="Automation not found")
        rule = await store.get_rule(rule_id)
        return rule.to_dict()

    @app.delete("/automations/{rule_id}")
    async def delete_automation(
        rule_id: str,
        authorization: str = Header(...),
    ) -> dict[str, str]:
        _verify_secret(authorization)
        if not await store.delete_rule(rule_id):
            raise HTTPException(status_code=404, detail="Automation not found")
        return {"status": "ok"}

    @app.post("/automations/dispatch")
    async def dispatch_event(
        body: DispatchBody,
        authorization: str = Header(...),
        x_user_id: str | None = Header(None),
    ) -> dict[str, Any]:
        """Обработать событие мутации и вернуть pending-выполнения элемента."""
        _verify_secret(authorization)
        context = body.context
        event = TriggerEvent(
            board_id=context.board_id,
            item_id=context.item_id,
            column_id=context.column_id,
            old_value=context.old_value,
            new_value=context.new_value,
            user_id=context.user_id or x_user_id,
        )
        await dispatcher.dispatch(body.trigger_type, event)

        if not event.item_id:
            return {"executions": []}
        pending = await store.list_executions(status="pending", item_id=event.item_id)
        return {"executions": [e.to_dict() for e in pending]}

    @app.put("/items/{item_id}/column-values")
    async def update_column_values(
        item_id: str,
        body: UpdateColumnValues,
        authorization: str = Header(...),
        x_user_id: str | None = Header(None),
    ) -> dict[str, Any]:
        """Сохранить значения колонок и запустить column_changed автоматизации."""
        _verify_secret(authorization)
        if await store.get_item_board(item_id) is None:
            raise HTTPException(status_code=404, detail="Item not found")
        try:
            for val in body.values:
                await store.set_column_value(
                    item_id, val.column_id, val.value, val.text_value, val.numeric_value
                )
        except aiosqlite.Error as e:
            raise HTTPException(status_code=500, detail=f"Database error: {e}")

        await on_column_values_changed(
            dispatcher,
            store,
            item_id,
            [val.model_dump() for val in body.values],
            user_id=x_user_id,
        )
        pending = await store.list_executions(status="pending", item_id=item_id)
        return {"executions": [e.to_dict() for e in pending]}

    @app.get("/executions")
    async def list_executions(
        status: str | None = None,
        item_id: str | None = None,
        authorization: str = Header(...),
    ) -> dict[str, Any]:
        _verify_secret(authorization)
        executions = await store.list_executions(status=status, item_id=item_id)
        return {"executions": [e.to_dict() for e in executions]}

    # =========================================================================
    # Config
    # =========================================================================

    @app.get("/config")
    async def get_config(
        authorization: str = Header(...),
    ) -> dict[str, Any]:
        _verify_secret(authorization)
        return _build_config_response()

    @app.patch("/config")
    async def patch_config(
        body: PatchConfig,
        authorization: str = Header(...),
    ) -> dict[str, Any]:
        _verify_secret(authorization)

        updates = body.model_dump(exclude_none=True)
        if not updates:
            raise HTTPException(status_code=400, detail="No fields to update")

        tz_name = updates.get("timezone")
        if tz_name and tz_name != "auto":
            try:
                ZoneInfo(tz_name)
            except (ZoneInfoNotFoundError, ValueError):
                raise HTTPException(status_code=400, detail=f"Unknown timezone: {tz_name}")

        async with _config_lock:
            apply_overrides(updates)
            current = get_current_overrides()
            current.update(updates)
            save_overrides(current)

        return _build_config_response()

    return app
