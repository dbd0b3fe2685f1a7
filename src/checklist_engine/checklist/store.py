# src/checklist_engine/checklist/store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

from ..core.calendar import format_time_of_day, parse_time_of_day, to_local_date_string, utc_now
from ..core.errors import ConflictError, NotFoundError, StoreUnavailableError
from .models import (
    DefinitionDraft,
    ReminderScope,
    RepeatRule,
    RepeatType,
    TaskDefinition,
    TaskInstance,
)

logger = logging.getLogger(__name__)

_UNSET: Any = object()

_INSTANCE_COLUMNS = (
    "i.id, i.definition_id, i.scheduled_date, i.assigned_to_id, i.completed_at, "
    "i.completed_by_id, i.note, i.created_at, d.title AS title"
)


def _ts_to_str(ts: datetime | None) -> str | None:
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC).isoformat(timespec="microseconds")


def _str_to_ts(raw: str | None) -> datetime | None:
    if not raw:
        return None
    ts = datetime.fromisoformat(raw)
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=UTC)


class ChecklistStore:
    """
    SQLite store for task definitions and their instances.

    Schema rules:
    - at most one instance per (definition_id, scheduled_date), enforced by a UNIQUE index
    - instances are owned by their definition (ON DELETE CASCADE)
    - create table if missing, add missing columns with ALTER TABLE

    Connections:
    - each method opens its own SQLite connection
    - inside `with store.transaction():` every call on this thread shares one connection
      and one BEGIN IMMEDIATE transaction
    """

    def __init__(self, db_path: str | Path = "checklist.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._ensure_schema()
        try:
            total = self.count_instances()
        except Exception:
            total = -1
        logger.info("ChecklistStore ready db=%s instances=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"cannot open {self._db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA foreign_keys=ON")
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    @contextlib.contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        tx_conn = getattr(self._local, "conn", None)
        if tx_conn is not None:
            yield tx_conn
            return

        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except sqlite3.OperationalError as e:
            conn.rollback()
            raise StoreUnavailableError(str(e)) from e
        finally:
            conn.close()

    @contextlib.contextmanager
    def transaction(self) -> Iterator[ChecklistStore]:
        """
        Group several store calls into one atomic write.

        Nested use joins the outer transaction.
        """
        if getattr(self._local, "conn", None) is not None:
            yield self
            return

        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as e:
            conn.close()
            raise StoreUnavailableError(str(e)) from e

        self._local.conn = conn
        try:
            yield self
            conn.commit()
        except sqlite3.OperationalError as e:
            conn.rollback()
            raise StoreUnavailableError(str(e)) from e
        except BaseException:
            conn.rollback()
            raise
        finally:
            self._local.conn = None
            conn.close()

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS task_definitions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    assignee_id TEXT NOT NULL,
                    created_by_id TEXT NOT NULL,
                    repeat_type TEXT NOT NULL DEFAULT 'once',
                    repeat_days_of_week TEXT,
                    repeat_days_after INTEGER,
                    start_date TEXT NOT NULL,
                    end_date TEXT,
                    show_until_completed INTEGER NOT NULL DEFAULT 0,
                    notify_on_complete_user_id TEXT,
                    notify_creator_on_complete INTEGER NOT NULL DEFAULT 0,
                    reminder_time TEXT,
                    reminder_scope TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS task_instances (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    definition_id INTEGER NOT NULL
                        REFERENCES task_definitions(id) ON DELETE CASCADE,
                    scheduled_date TEXT NOT NULL,
                    assigned_to_id TEXT NOT NULL,
                    completed_at TEXT,
                    completed_by_id TEXT,
                    note TEXT,
                    created_at TEXT NOT NULL,
                    UNIQUE(definition_id, scheduled_date)
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS notification_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    recipient_id TEXT NOT NULL,
                    template_type TEXT NOT NULL,
                    title TEXT NOT NULL,
                    body_preview TEXT NOT NULL DEFAULT '',
                    channel TEXT NOT NULL DEFAULT 'push',
                    instance_id INTEGER,
                    created_at TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS reminder_runs (
                    slot_key TEXT PRIMARY KEY,
                    claimed_at TEXT NOT NULL
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(task_definitions)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE task_definitions ADD COLUMN {name} {decl}")
                logger.info("ChecklistStore migration: added column %s", name)

            add_col("show_until_completed", "INTEGER NOT NULL DEFAULT 0")
            add_col("reminder_time", "TEXT")
            add_col("reminder_scope", "TEXT")

            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_instances_assignee_date "
                "ON task_instances(assigned_to_id, scheduled_date)"
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_instances_open "
                "ON task_instances(completed_at, scheduled_date)"
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_definitions_assignee ON task_definitions(assignee_id)"
            )

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _days_to_str(days: Iterable[int]) -> str | None:
        vals = sorted({int(d) for d in days})
        return json.dumps(vals) if vals else None

    @staticmethod
    def _str_to_days(raw: str | None) -> frozenset[int]:
        if not raw:
            return frozenset()
        try:
            val = json.loads(raw)
        except Exception:
            logger.warning("Bad repeat_days_of_week value %r; treating as empty.", raw)
            return frozenset()
        return frozenset(int(d) for d in val) if isinstance(val, list) else frozenset()

    def _row_to_definition(self, row: sqlite3.Row) -> TaskDefinition:
        kind = RepeatType.from_db(row["repeat_type"])
        rule = RepeatRule(
            kind=kind,
            days=self._str_to_days(row["repeat_days_of_week"]),
            days_after=int(row["repeat_days_after"]) if row["repeat_days_after"] is not None else None,
        )
        return TaskDefinition(
            id=int(row["id"]),
            title=str(row["title"] or ""),
            assignee_id=str(row["assignee_id"]),
            created_by_id=str(row["created_by_id"]),
            rule=rule,
            start_date=date.fromisoformat(row["start_date"]),
            end_date=date.fromisoformat(row["end_date"]) if row["end_date"] else None,
            show_until_completed=bool(row["show_until_completed"]),
            notify_on_complete_user_id=row["notify_on_complete_user_id"],
            notify_creator_on_complete=bool(row["notify_creator_on_complete"]),
            reminder_time=parse_time_of_day(row["reminder_time"]) if row["reminder_time"] else None,
            reminder_scope=ReminderScope.from_db(row["reminder_scope"]),
            created_at=_str_to_ts(row["created_at"]),
            updated_at=_str_to_ts(row["updated_at"]),
        )

    @staticmethod
    def _row_to_instance(row: sqlite3.Row) -> TaskInstance:
        keys = row.keys()
        created_at = _str_to_ts(row["created_at"])
        return TaskInstance(
            id=int(row["id"]),
            definition_id=int(row["definition_id"]),
            scheduled_date=date.fromisoformat(row["scheduled_date"]),
            assignee_id=str(row["assigned_to_id"]),
            created_at=created_at if created_at is not None else datetime.fromtimestamp(0, UTC),
            completed_at=_str_to_ts(row["completed_at"]),
            completed_by_id=row["completed_by_id"],
            note=row["note"],
            title=row["title"] if "title" in keys else None,
        )

    def _select_instances(
        self,
        where: str,
        params: Iterable[Any],
        order: str,
        limit: int | None = None,
    ) -> list[TaskInstance]:
        sql = (
            f"SELECT {_INSTANCE_COLUMNS} FROM task_instances i "
            f"JOIN task_definitions d ON d.id = i.definition_id "
            f"WHERE {where} ORDER BY {order}"
        )
        args = list(params)
        if limit is not None:
            sql += " LIMIT ?"
            args.append(int(limit))
        with self._session() as conn:
            rows = conn.execute(sql, args).fetchall()
        return [self._row_to_instance(r) for r in rows]

    # ---- definitions ----

    def add_definition(
        self,
        draft: DefinitionDraft,
        *,
        created_by_id: str,
        now: datetime | None = None,
    ) -> TaskDefinition:
        ts = _ts_to_str(now or utc_now())
        rule = draft.rule
        with self._session() as conn:
            cur = conn.execute(
                """
                INSERT INTO task_definitions(
                    title, assignee_id, created_by_id,
                    repeat_type, repeat_days_of_week, repeat_days_after,
                    start_date, end_date, show_until_completed,
                    notify_on_complete_user_id, notify_creator_on_complete,
                    reminder_time, reminder_scope, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    draft.title,
                    draft.assignee_id,
                    created_by_id,
                    rule.kind.value,
                    self._days_to_str(rule.days) if rule.kind == RepeatType.WEEKLY_ON_DAYS else None,
                    rule.days_after if rule.kind == RepeatType.DAYS_AFTER_COMPLETION else None,
                    to_local_date_string(draft.start_date),
                    to_local_date_string(draft.end_date) if draft.end_date else None,
                    int(bool(draft.show_until_completed)),
                    draft.notify_on_complete_user_id,
                    int(bool(draft.notify_creator_on_complete)),
                    format_time_of_day(draft.reminder_time) if draft.reminder_time else None,
                    draft.reminder_scope.value if draft.reminder_scope else None,
                    ts,
                    ts,
                ),
            )
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for task_definitions insert")
            definition_id = int(rowid)
            row = conn.execute("SELECT * FROM task_definitions WHERE id = ?", (definition_id,)).fetchone()

        logger.debug(
            "Definition added id=%s type=%s assignee=%s start=%s",
            definition_id,
            rule.kind.value,
            draft.assignee_id,
            draft.start_date,
        )
        return self._row_to_definition(row)

    def get_definition(self, definition_id: int) -> TaskDefinition | None:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM task_definitions WHERE id = ?", (int(definition_id),)
            ).fetchone()
        return self._row_to_definition(row) if row else None

    def require_definition(self, definition_id: int) -> TaskDefinition:
        definition = self.get_definition(definition_id)
        if definition is None:
            raise NotFoundError(f"task definition {definition_id} not found")
        return definition

    def list_definitions(self, *, assignee_id: str | None = None) -> list[TaskDefinition]:
        with self._session() as conn:
            if assignee_id:
                rows = conn.execute(
                    "SELECT * FROM task_definitions WHERE assignee_id = ? ORDER BY start_date DESC, id DESC",
                    (assignee_id,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM task_definitions ORDER BY start_date DESC, id DESC"
                ).fetchall()
        return [self._row_to_definition(r) for r in rows]

    def list_definitions_with_reminders(self) -> list[TaskDefinition]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM task_definitions WHERE reminder_time IS NOT NULL ORDER BY id"
            ).fetchall()
        return [self._row_to_definition(r) for r in rows]

    def update_definition(
        self,
        definition_id: int,
        draft: DefinitionDraft,
        *,
        now: datetime | None = None,
    ) -> TaskDefinition:
        rule = draft.rule
        with self._session() as conn:
            cur = conn.execute(
                """
                UPDATE task_definitions
                SET title = ?,
                    assignee_id = ?,
                    repeat_type = ?,
                    repeat_days_of_week = ?,
                    repeat_days_after = ?,
                    start_date = ?,
                    end_date = ?,
                    show_until_completed = ?,
                    notify_on_complete_user_id = ?,
                    notify_creator_on_complete = ?,
                    reminder_time = ?,
                    reminder_scope = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    draft.title,
                    draft.assignee_id,
                    rule.kind.value,
                    self._days_to_str(rule.days) if rule.kind == RepeatType.WEEKLY_ON_DAYS else None,
                    rule.days_after if rule.kind == RepeatType.DAYS_AFTER_COMPLETION else None,
                    to_local_date_string(draft.start_date),
                    to_local_date_string(draft.end_date) if draft.end_date else None,
                    int(bool(draft.show_until_completed)),
                    draft.notify_on_complete_user_id,
                    int(bool(draft.notify_creator_on_complete)),
                    format_time_of_day(draft.reminder_time) if draft.reminder_time else None,
                    draft.reminder_scope.value if draft.reminder_scope else None,
                    _ts_to_str(now or utc_now()),
                    int(definition_id),
                ),
            )
            if cur.rowcount != 1:
                raise NotFoundError(f"task definition {definition_id} not found")
        return self.require_definition(definition_id)

    def delete_definition(self, definition_id: int) -> int:
        """Delete a definition and (via cascade) all of its instances. Returns instances removed."""
        with self._session() as conn:
            (n,) = conn.execute(
                "SELECT COUNT(*) FROM task_instances WHERE definition_id = ?", (int(definition_id),)
            ).fetchone()
            cur = conn.execute("DELETE FROM task_definitions WHERE id = ?", (int(definition_id),))
            if cur.rowcount != 1:
                raise NotFoundError(f"task definition {definition_id} not found")
        logger.debug("Definition deleted id=%s instances=%s", definition_id, n)
        return int(n)

    # ---- instances ----

    def count_instances(self) -> int:
        with self._session() as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM task_instances").fetchone()
        return int(n)

    def add_instance(
        self,
        *,
        definition_id: int,
        scheduled_date: date,
        assignee_id: str,
        completed_at: datetime | None = None,
        completed_by_id: str | None = None,
        now: datetime | None = None,
    ) -> TaskInstance:
        """Plain insert. Raises ConflictError when (definition, date) already exists."""
        try:
            with self._session() as conn:
                cur = conn.execute(
                    """
                    INSERT INTO task_instances(
                        definition_id, scheduled_date, assigned_to_id,
                        completed_at, completed_by_id, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        int(definition_id),
                        to_local_date_string(scheduled_date),
                        assignee_id,
                        _ts_to_str(completed_at),
                        completed_by_id,
                        _ts_to_str(now or utc_now()),
                    ),
                )
                instance_id = int(cur.lastrowid or 0)
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e).upper():
                raise ConflictError(int(definition_id), scheduled_date) from e
            raise
        instance = self.get_instance(instance_id)
        if instance is None:
            raise RuntimeError(f"instance {instance_id} vanished right after insert")
        return instance

    def add_instance_if_absent(
        self,
        *,
        definition_id: int,
        scheduled_date: date,
        assignee_id: str,
        unless_later_than: date | None = None,
        now: datetime | None = None,
    ) -> TaskInstance | None:
        """
        Conditional insert keyed on (definition_id, scheduled_date).

        With `unless_later_than`, the insert is also skipped when the definition
        already has any instance dated after that day.
        Returns the new instance, or None if nothing was inserted.
        """
        args: list[Any] = [
            int(definition_id),
            to_local_date_string(scheduled_date),
            assignee_id,
            _ts_to_str(now or utc_now()),
        ]
        guard = "1"
        if unless_later_than is not None:
            guard = (
                "NOT EXISTS (SELECT 1 FROM task_instances "
                "WHERE definition_id = ? AND scheduled_date > ?)"
            )
            args += [int(definition_id), to_local_date_string(unless_later_than)]

        with self._session() as conn:
            cur = conn.execute(
                f"""
                INSERT INTO task_instances(definition_id, scheduled_date, assigned_to_id, created_at)
                SELECT ?, ?, ?, ? WHERE {guard}
                ON CONFLICT(definition_id, scheduled_date) DO NOTHING
                """,
                args,
            )
            inserted = cur.rowcount == 1
            instance_id = int(cur.lastrowid or 0)
        if not inserted:
            logger.debug(
                "Instance insert skipped definition=%s date=%s (present or superseded)",
                definition_id,
                scheduled_date,
            )
            return None
        return self.get_instance(instance_id)

    def add_instances(
        self,
        definition_id: int,
        rows: Iterable[tuple[date, str]],
        *,
        now: datetime | None = None,
    ) -> int:
        """Bulk insert (date, assignee) pairs, skipping existing keys. Returns rows inserted."""
        ts = _ts_to_str(now or utc_now())
        params = [
            (int(definition_id), to_local_date_string(d), assignee, ts) for d, assignee in rows
        ]
        if not params:
            return 0
        with self._session() as conn:
            before = conn.total_changes
            conn.executemany(
                """
                INSERT INTO task_instances(definition_id, scheduled_date, assigned_to_id, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(definition_id, scheduled_date) DO NOTHING
                """,
                params,
            )
            inserted = conn.total_changes - before
        return int(inserted)

    def get_instance(self, instance_id: int) -> TaskInstance | None:
        rows = self._select_instances("i.id = ?", (int(instance_id),), "i.id")
        return rows[0] if rows else None

    def require_instance(self, instance_id: int) -> TaskInstance:
        instance = self.get_instance(instance_id)
        if instance is None:
            raise NotFoundError(f"task instance {instance_id} not found")
        return instance

    def find_instance(self, definition_id: int, scheduled_date: date) -> TaskInstance | None:
        rows = self._select_instances(
            "i.definition_id = ? AND i.scheduled_date = ?",
            (int(definition_id), to_local_date_string(scheduled_date)),
            "i.id",
        )
        return rows[0] if rows else None

    def update_instance_completion(
        self,
        instance_id: int,
        *,
        completed_at: datetime | None,
        completed_by_id: str | None,
        note: str | None = _UNSET,
    ) -> TaskInstance:
        fields = ["completed_at = ?", "completed_by_id = ?"]
        params: list[Any] = [_ts_to_str(completed_at), completed_by_id]
        if note is not _UNSET:
            fields.append("note = ?")
            params.append(note)
        params.append(int(instance_id))

        with self._session() as conn:
            cur = conn.execute(
                f"UPDATE task_instances SET {', '.join(fields)} WHERE id = ?", params
            )
            if cur.rowcount != 1:
                raise NotFoundError(f"task instance {instance_id} not found")
        return self.require_instance(instance_id)

    def update_instance_note(self, instance_id: int, note: str | None) -> TaskInstance:
        with self._session() as conn:
            cur = conn.execute(
                "UPDATE task_instances SET note = ? WHERE id = ?", (note, int(instance_id))
            )
            if cur.rowcount != 1:
                raise NotFoundError(f"task instance {instance_id} not found")
        return self.require_instance(instance_id)

    def delete_instance(self, instance_id: int) -> bool:
        with self._session() as conn:
            cur = conn.execute("DELETE FROM task_instances WHERE id = ?", (int(instance_id),))
            return cur.rowcount == 1

    # ---- queries ----

    def list_instances_on(self, assignee_id: str, on: date) -> list[TaskInstance]:
        """Instances for assignee scheduled exactly on `on`, oldest created first."""
        return self._select_instances(
            "i.assigned_to_id = ? AND i.scheduled_date = ?",
            (assignee_id, to_local_date_string(on)),
            "i.created_at ASC, i.id ASC",
        )

    def list_overdue(self, assignee_id: str, before: date) -> list[TaskInstance]:
        """Incomplete instances before `before` whose definition shows until completed."""
        return self._select_instances(
            "i.assigned_to_id = ? AND i.scheduled_date < ? "
            "AND i.completed_at IS NULL AND d.show_until_completed = 1",
            (assignee_id, to_local_date_string(before)),
            "i.scheduled_date ASC, i.created_at ASC, i.id ASC",
        )

    def list_after(self, assignee_id: str, after: date, *, limit: int = 30) -> list[TaskInstance]:
        return self._select_instances(
            "i.assigned_to_id = ? AND i.scheduled_date > ?",
            (assignee_id, to_local_date_string(after)),
            "i.scheduled_date ASC, i.created_at ASC, i.id ASC",
            limit=limit,
        )

    def list_between(self, assignee_id: str, start: date, end: date) -> list[TaskInstance]:
        return self._select_instances(
            "i.assigned_to_id = ? AND i.scheduled_date >= ? AND i.scheduled_date <= ?",
            (assignee_id, to_local_date_string(start), to_local_date_string(end)),
            "i.scheduled_date ASC, i.id ASC",
        )

    def list_outstanding(
        self,
        *,
        start: date | None = None,
        end: date | None = None,
        repeat_type: RepeatType | None = None,
    ) -> list[TaskInstance]:
        """Incomplete instances for every assignee, optionally limited to a date window."""
        where = ["i.completed_at IS NULL"]
        params: list[Any] = []
        if start is not None:
            where.append("i.scheduled_date >= ?")
            params.append(to_local_date_string(start))
        if end is not None:
            where.append("i.scheduled_date <= ?")
            params.append(to_local_date_string(end))
        if repeat_type is not None:
            where.append("d.repeat_type = ?")
            params.append(repeat_type.value)
        return self._select_instances(" AND ".join(where), params, "i.scheduled_date ASC, i.id ASC")

    def list_open_for_definition(
        self,
        definition_id: int,
        *,
        assignee_id: str,
        up_to: date,
        only_on: bool = False,
    ) -> list[TaskInstance]:
        """Incomplete instances of one definition for one assignee (on `up_to`, or on/before it)."""
        op = "=" if only_on else "<="
        return self._select_instances(
            f"i.definition_id = ? AND i.assigned_to_id = ? "
            f"AND i.completed_at IS NULL AND i.scheduled_date {op} ?",
            (int(definition_id), assignee_id, to_local_date_string(up_to)),
            "i.scheduled_date ASC, i.id ASC",
        )

    # ---- notification log / reminder claims ----

    def record_notification(
        self,
        *,
        recipient_id: str,
        template_type: str,
        title: str,
        body: str,
        channel: str = "push",
        instance_id: int | None = None,
        now: datetime | None = None,
    ) -> int:
        with self._session() as conn:
            cur = conn.execute(
                """
                INSERT INTO notification_history(
                    recipient_id, template_type, title, body_preview, channel, instance_id, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    recipient_id,
                    template_type,
                    title,
                    (body or "")[:200],
                    channel,
                    instance_id,
                    _ts_to_str(now or utc_now()),
                ),
            )
            return int(cur.lastrowid or 0)

    def count_notifications(self, *, recipient_id: str | None = None) -> int:
        with self._session() as conn:
            if recipient_id:
                (n,) = conn.execute(
                    "SELECT COUNT(*) FROM notification_history WHERE recipient_id = ?",
                    (recipient_id,),
                ).fetchone()
            else:
                (n,) = conn.execute("SELECT COUNT(*) FROM notification_history").fetchone()
        return int(n)

    def try_claim_reminder_slot(self, slot_key: str, *, now: datetime | None = None) -> bool:
        """
        Best-effort claim so that several schedulers do not send the same reminder slot twice.

        Returns True if this caller claimed the slot.
        """
        with self._session() as conn:
            cur = conn.execute(
                "INSERT INTO reminder_runs(slot_key, claimed_at) VALUES (?, ?) "
                "ON CONFLICT(slot_key) DO NOTHING",
                (slot_key, _ts_to_str(now or utc_now())),
            )
            return cur.rowcount == 1
