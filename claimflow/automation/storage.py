"""
AutomationStorage: SQLite хранилище правил и очереди выполнений.

Своё подключение (WAL mode, безопасно для concurrent access).

Два режима ошибок:
- путь движка (list_active, get_field_value, get_item_archived,
  enqueue_execution) никогда не бросает: возвращает StoreResult
  с тегом ошибки, политику решает dispatcher;
- управление правилами (create/set_active/delete) пробрасывает
  ошибки вызывающему.
"""

import asyncio
import json
import uuid
from datetime import datetime
from typing import Any

import aiosqlite
from loguru import logger

from claimflow.config import settings
from claimflow.automation.models import (
    AutomationRule,
    Condition,
    ExecutionRequest,
    StoreResult,
)


class AutomationStorage:
    """Хранилище правил автоматизации, значений колонок и выполнений."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._db_lock = asyncio.Lock()

    async def _get_db(self) -> aiosqlite.Connection:
        if self._db is not None:
            return self._db

        async with self._db_lock:
            if self._db is None:
                db = await aiosqlite.connect(self._db_path)
                db.row_factory = aiosqlite.Row
                try:
                    await db.execute("PRAGMA journal_mode=WAL")
                    self._db = db
                    await self._init_schema()
                except Exception:
                    self._db = None
                    await db.close()
                    raise
        return self._db

    async def _init_schema(self) -> None:
        db = self._db

        # Правила
        await db.execute("""
            CREATE TABLE IF NOT EXISTS automation_rules (
                id TEXT PRIMARY KEY,
                board_id TEXT NOT NULL,
                name TEXT NOT NULL,
                description TEXT,
                trigger_type TEXT NOT NULL,
                trigger_config TEXT DEFAULT '{}',
                conditions TEXT DEFAULT '[]',
                actions TEXT DEFAULT '[]',
                is_active INTEGER DEFAULT 1,
                created_by TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # Элементы досок (пишет board-слой, движок только читает)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS items (
                id TEXT PRIMARY KEY,
                board_id TEXT NOT NULL,
                name TEXT DEFAULT '',
                is_archived INTEGER DEFAULT 0
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS column_values (
                item_id TEXT NOT NULL,
                column_id TEXT NOT NULL,
                value TEXT,
                text_value TEXT,
                numeric_value REAL,
                PRIMARY KEY (item_id, column_id)
            )
        """)

        # Очередь выполнений (append-only для движка)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS automation_executions (
                id TEXT PRIMARY KEY,
                rule_id TEXT NOT NULL,
                item_id TEXT,
                trigger_data TEXT NOT NULL,
                execution_status TEXT DEFAULT 'pending',
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # Индексы
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_rules_lookup "
            "ON automation_rules(board_id, trigger_type, is_active)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_exec_status ON automation_executions(execution_status)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_exec_item ON automation_executions(item_id)"
        )

        await db.commit()
        logger.debug("AutomationStorage schema initialized")

    # =========================================================================
    # Rule Lookup
    # =========================================================================

    async def list_active(
        self, board_id: str, trigger_type: str
    ) -> StoreResult[list[AutomationRule]]:
        """Активные правила доски для типа триггера."""
        try:
            db = await self._get_db()
            cursor = await db.execute(
                """
                SELECT * FROM automation_rules
                WHERE board_id = ? AND is_active = 1 AND trigger_type = ?
                ORDER BY created_at, rowid
                """,
                (board_id, trigger_type),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            return StoreResult.failure("query_failed", str(e))

        rules = []
        for row in rows:
            try:
                rules.append(self._row_to_rule(row))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed automation rule [{row['id']}]: {e}")
        return StoreResult.success(rules)

    # =========================================================================
    # Field / Dependency Lookup
    # =========================================================================

    async def get_field_value(
        self, item_id: str, column_id: str
    ) -> StoreResult[dict[str, Any]]:
        """Значение колонки элемента: {value, text_value, numeric_value} или None."""
        try:
            db = await self._get_db()
            cursor = await db.execute(
                """
                SELECT value, text_value, numeric_value FROM column_values
                WHERE item_id = ? AND column_id = ?
                """,
                (item_id, column_id),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            return StoreResult.failure("query_failed", str(e))

        if row is None:
            return StoreResult.success(None)

        try:
            raw = json.loads(row["value"]) if row["value"] is not None else None
        except ValueError as e:
            return StoreResult.failure("decode_failed", str(e))

        return StoreResult.success({
            "value": raw,
            "text_value": row["text_value"],
            "numeric_value": row["numeric_value"],
        })

    async def get_item_archived(self, item_id: str) -> StoreResult[bool]:
        """Флаг is_archived элемента. None если элемента нет."""
        try:
            db = await self._get_db()
            cursor = await db.execute(
                "SELECT is_archived FROM items WHERE id = ?",
                (item_id,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            return StoreResult.failure("query_failed", str(e))

        if row is None or row["is_archived"] is None:
            return StoreResult.success(None)
        return StoreResult.success(bool(row["is_archived"]))

    async def get_item_board(self, item_id: str) -> str | None:
        """board_id элемента."""
        db = await self._get_db()
        cursor = await db.execute(
            "SELECT board_id FROM items WHERE id = ?",
            (item_id,),
        )
        row = await cursor.fetchone()
        return row["board_id"] if row else None

    # =========================================================================
    # Execution Queue
    # =========================================================================

    async def enqueue_execution(
        self, rule_id: str, item_id: str | None, trigger_data: dict[str, Any]
    ) -> StoreResult[ExecutionRequest]:
        """Создаёт ExecutionRequest в статусе pending."""
        request = ExecutionRequest(
            id=uuid.uuid4().hex,
            rule_id=rule_id,
            item_id=item_id,
            trigger_data=trigger_data,
        )
        try:
            payload = json.dumps(trigger_data, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            return StoreResult.failure("write_failed", f"trigger_data not serializable: {e}")

        try:
            db = await self._get_db()
            await db.execute(
                """
                INSERT INTO automation_executions
                    (id, rule_id, item_id, trigger_data, execution_status, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    request.id,
                    request.rule_id,
                    request.item_id,
                    payload,
                    request.execution_status,
                    request.created_at.isoformat(),
                ),
            )
            await db.commit()
        except aiosqlite.Error as e:
            return StoreResult.failure("write_failed", str(e))

        return StoreResult.success(request)

    async def list_executions(
        self, status: str | None = None, item_id: str | None = None
    ) -> list[ExecutionRequest]:
        """Выполнения с фильтром по статусу и элементу (старые первыми)."""
        query = "SELECT * FROM automation_executions WHERE 1 = 1"
        params: list[Any] = []
        if status is not None:
            query += " AND execution_status = ?"
            params.append(status)
        if item_id is not None:
            query += " AND item_id = ?"
            params.append(item_id)
        query += " ORDER BY created_at, rowid"

        db = await self._get_db()
        cursor = await db.execute(query, params)
        rows = await cursor.fetchall()
        return [self._row_to_execution(row) for row in rows]

    # =========================================================================
    # Rule Management
    # =========================================================================

    async def create_rule(
        self,
        board_id: str,
        name: str,
        trigger_type: str,
        trigger_config: dict[str, Any] | None = None,
        conditions: list[dict[str, Any]] | None = None,
        actions: list[dict[str, Any]] | None = None,
        description: str | None = None,
        is_active: bool = True,
        created_by: str | None = None,
    ) -> AutomationRule:
        """Создаёт правило."""
        rule = AutomationRule(
            id=uuid.uuid4().hex,
            board_id=board_id,
            name=name,
            description=description,
            trigger_type=trigger_type,
            trigger_config=dict(trigger_config or {}),
            conditions=tuple(Condition.from_dict(c) for c in conditions or []),
            actions=list(actions or []),
            is_active=is_active,
            created_by=created_by,
        )

        db = await self._get_db()
        await db.execute(
            """
            INSERT INTO automation_rules
                (id, board_id, name, description, trigger_type, trigger_config,
                 conditions, actions, is_active, created_by, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                rule.id,
                rule.board_id,
                rule.name,
                rule.description,
                rule.trigger_type,
                json.dumps(rule.trigger_config, ensure_ascii=False),
                json.dumps([c.to_dict() for c in rule.conditions], ensure_ascii=False),
                json.dumps(rule.actions, ensure_ascii=False),
                1 if rule.is_active else 0,
                rule.created_by,
                rule.created_at.isoformat(),
            ),
        )
        await db.commit()

        logger.info(f"Automation rule created [{rule.id}]: {trigger_type} on board {board_id}")
        return rule

    async def get_rule(self, rule_id: str) -> AutomationRule | None:
        db = await self._get_db()
        cursor = await db.execute(
            "SELECT * FROM automation_rules WHERE id = ?",
            (rule_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_rule(row) if row else None

    async def list_rules(self, board_id: str) -> list[AutomationRule]:
        """Все правила доски (включая неактивные), новые первыми."""
        db = await self._get_db()
        cursor = await db.execute(
            "SELECT * FROM automation_rules WHERE board_id = ? ORDER BY created_at DESC, rowid DESC",
            (board_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_rule(row) for row in rows]

    async def set_active(self, rule_id: str, active: bool) -> bool:
        """Включает/выключает правило."""
        db = await self._get_db()
        cursor = await db.execute(
            "UPDATE automation_rules SET is_active = ? WHERE id = ?",
            (1 if active else 0, rule_id),
        )
        await db.commit()
        if cursor.rowcount > 0:
            logger.info(f"Automation rule [{rule_id}] active={active}")
        return cursor.rowcount > 0

    async def delete_rule(self, rule_id: str) -> bool:
        """Удаляет правило."""
        db = await self._get_db()
        cursor = await db.execute(
            "DELETE FROM automation_rules WHERE id = ?",
            (rule_id,),
        )
        await db.commit()
        if cursor.rowcount > 0:
            logger.info(f"Automation rule deleted [{rule_id}]")
        return cursor.rowcount > 0

    # =========================================================================
    # Board records
    # =========================================================================

    async def upsert_item(
        self, item_id: str, board_id: str, name: str = "", is_archived: bool = False
    ) -> None:
        db = await self._get_db()
        await db.execute(
            """
            INSERT INTO items (id, board_id, name, is_archived) VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                board_id = excluded.board_id,
                name = excluded.name,
                is_archived = excluded.is_archived
            """,
            (item_id, board_id, name, 1 if is_archived else 0),
        )
        await db.commit()

    async def set_column_value(
        self,
        item_id: str,
        column_id: str,
        value: Any = None,
        text_value: str | None = None,
        numeric_value: float | None = None,
    ) -> None:
        """Upsert значения колонки по (item_id, column_id)."""
        db = await self._get_db()
        await db.execute(
            """
            INSERT INTO column_values (item_id, column_id, value, text_value, numeric_value)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(item_id, column_id) DO UPDATE SET
                value = excluded.value,
                text_value = excluded.text_value,
                numeric_value = excluded.numeric_value
            """,
            (
                item_id,
                column_id,
                json.dumps(value, ensure_ascii=False) if value is not None else None,
                text_value,
                numeric_value,
            ),
        )
        await db.commit()

    # =========================================================================
    # Row mapping
    # =========================================================================

    def _row_to_rule(self, row: aiosqlite.Row) -> AutomationRule:
        config_raw = row["trigger_config"]
        conditions_raw = row["conditions"]
        actions_raw = row["actions"]

        created_str = row["created_at"]
        created_at = (
            datetime.fromisoformat(created_str) if created_str else datetime.now()
        )

        return AutomationRule(
            id=row["id"],
            board_id=row["board_id"],
            name=row["name"],
            description=row["description"],
            trigger_type=row["trigger_type"],
            trigger_config=json.loads(config_raw) if config_raw else {},
            conditions=tuple(
                Condition.from_dict(c) for c in (json.loads(conditions_raw) if conditions_raw else [])
            ),
            actions=json.loads(actions_raw) if actions_raw else [],
            is_active=bool(row["is_active"]),
            created_by=row["created_by"],
            created_at=created_at,
        )

    def _row_to_execution(self, row: aiosqlite.Row) -> ExecutionRequest:
        return ExecutionRequest(
            id=row["id"],
            rule_id=row["rule_id"],
            item_id=row["item_id"],
            trigger_data=json.loads(row["trigger_data"]),
            execution_status=row["execution_status"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    async def close(self) -> None:
        """Закрывает соединение с БД."""
        if self._db:
            await self._db.close()
            self._db = None


# Singleton
_storage: AutomationStorage | None = None


def get_storage() -> AutomationStorage:
    """Возвращает глобальный storage."""
    global _storage
    if _storage is None:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        _storage = AutomationStorage(str(settings.db_path))
    return _storage
