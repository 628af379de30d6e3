from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Optional

from ..errors import IncidentNotFoundError
from ..history.db import connect, ensure_schema_conn
from ..severity import RESOLVED


RECENT_UPDATES = 3
RESOLVED_LOOKBACK_DAYS = 14


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class IncidentUpdate:
    message: str
    status: str
    created_at: int

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "status": self.status, "created_at": self.created_at}


@dataclass(frozen=True)
class Incident:
    id: int
    component_id: str
    title: str
    status: str
    description: str
    created_at: int
    resolved_at: Optional[int] = None
    updates: list[IncidentUpdate] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.status == RESOLVED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "component_id": self.component_id,
            "title": self.title,
            "status": self.status,
            "description": self.description,
            "created_at": self.created_at,
            "resolved_at": self.resolved_at,
            "updates": [u.to_dict() for u in self.updates],
        }


@dataclass(frozen=True)
class MaintenanceWindow:
    id: int
    title: str
    description: str
    start_time: int
    end_time: int
    status: str
    created_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "status": self.status,
            "created_at": self.created_at,
        }


def _incident_from_row(row: Any, updates: list[IncidentUpdate]) -> Incident:
    return Incident(
        id=int(row["id"]),
        component_id=str(row["component_id"]),
        title=str(row["title"]),
        status=str(row["status"]),
        description=str(row["description"] or ""),
        created_at=int(row["created_at"]),
        resolved_at=int(row["resolved_at"]) if row["resolved_at"] is not None else None,
        updates=updates,
    )


def _maintenance_from_row(row: Any) -> MaintenanceWindow:
    return MaintenanceWindow(
        id=int(row["id"]),
        title=str(row["title"]),
        description=str(row["description"] or ""),
        start_time=int(row["start_time"]),
        end_time=int(row["end_time"]),
        status=str(row["status"]),
        created_at=int(row["created_at"]),
    )


class IncidentStore:
    """sqlite persistence for incidents, their updates and maintenance windows.

    Timestamps are unix epoch milliseconds. Updates are append-only.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        conn = connect(self.db_path)
        try:
            ensure_schema_conn(conn)
        finally:
            conn.close()

    def _updates(self, conn: Any, incident_id: int, limit: Optional[int] = None) -> list[IncidentUpdate]:
        sql = "SELECT message, status, created_at FROM incident_updates WHERE incident_id=? ORDER BY created_at DESC, id DESC"
        params: tuple[Any, ...] = (incident_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (incident_id, int(limit))
        rows = conn.execute(sql, params).fetchall()
        return [IncidentUpdate(message=str(r["message"]), status=str(r["status"]), created_at=int(r["created_at"])) for r in rows]

    def create_incident(
        self,
        *,
        component_id: str,
        title: str,
        status: str,
        description: str = "",
        update_text: str = "",
    ) -> Incident:
        now = now_ms()
        conn = connect(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE;")
            try:
                cur = conn.execute(
                    """
                    INSERT INTO incidents (component_id, title, status, description, created_at, resolved_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (component_id, title, status, description, now, now if status == RESOLVED else None),
                )
                incident_id = int(cur.lastrowid)
                initial = update_text or description
                if initial:
                    conn.execute(
                        "INSERT INTO incident_updates (incident_id, message, status, created_at) VALUES (?, ?, ?, ?)",
                        (incident_id, initial, status, now),
                    )
                conn.execute("COMMIT;")
            except Exception:
                conn.execute("ROLLBACK;")
                raise
        finally:
            conn.close()
        return self.get_incident(incident_id)

    def post_update(self, incident_id: int, *, message: str, status: str) -> Incident:
        now = now_ms()
        conn = connect(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE;")
            try:
                row = conn.execute("SELECT id FROM incidents WHERE id=?", (incident_id,)).fetchone()
                if row is None:
                    raise IncidentNotFoundError(f"Incident {incident_id} not found")
                conn.execute(
                    "INSERT INTO incident_updates (incident_id, message, status, created_at) VALUES (?, ?, ?, ?)",
                    (incident_id, message, status, now),
                )
                if status == RESOLVED:
                    conn.execute("UPDATE incidents SET status=?, resolved_at=? WHERE id=?", (status, now, incident_id))
                else:
                    conn.execute("UPDATE incidents SET status=? WHERE id=?", (status, incident_id))
                conn.execute("COMMIT;")
            except Exception:
                conn.execute("ROLLBACK;")
                raise
        finally:
            conn.close()
        return self.get_incident(incident_id)

    def get_incident(self, incident_id: int) -> Incident:
        conn = connect(self.db_path)
        try:
            row = conn.execute("SELECT * FROM incidents WHERE id=?", (incident_id,)).fetchone()
            if row is None:
                raise IncidentNotFoundError(f"Incident {incident_id} not found")
            return _incident_from_row(row, self._updates(conn, incident_id))
        finally:
            conn.close()

    def get_open_incidents(self) -> list[Incident]:
        """Unresolved incidents, newest first, each with its latest updates."""
        conn = connect(self.db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM incidents WHERE status != ? ORDER BY created_at DESC, id DESC", (RESOLVED,)
            ).fetchall()
            return [_incident_from_row(r, self._updates(conn, int(r["id"]), RECENT_UPDATES)) for r in rows]
        finally:
            conn.close()

    def delete_incident(self, incident_id: int) -> Incident:
        incident = self.get_incident(incident_id)
        conn = connect(self.db_path)
        try:
            conn.execute("DELETE FROM incident_updates WHERE incident_id=?", (incident_id,))
            conn.execute("DELETE FROM incidents WHERE id=?", (incident_id,))
        finally:
            conn.close()
        return incident

    def get_resolved(self, limit: int = 5, lookback_days: int = RESOLVED_LOOKBACK_DAYS) -> list[dict[str, Any]]:
        """Recently resolved incidents and ended maintenance, most recent end first."""
        now = now_ms()
        cutoff = now - int(lookback_days) * 24 * 60 * 60 * 1000
        conn = connect(self.db_path)
        try:
            maintenance = conn.execute(
                """
                SELECT id, title, description, start_time, end_time, 'maintenance' AS type
                FROM maintenance_posts
                WHERE end_time < ? AND end_time > ?
                ORDER BY end_time DESC
                LIMIT ?
                """,
                (now, cutoff, int(limit)),
            ).fetchall()
            incidents = conn.execute(
                """
                SELECT id, title, description, created_at AS start_time, resolved_at AS end_time, 'incident' AS type
                FROM incidents
                WHERE status = ? AND resolved_at > ?
                ORDER BY resolved_at DESC
                LIMIT ?
                """,
                (RESOLVED, cutoff, int(limit)),
            ).fetchall()
        finally:
            conn.close()

        combined = [dict(r) for r in maintenance] + [dict(r) for r in incidents]
        combined.sort(key=lambda item: int(item.get("end_time") or 0), reverse=True)
        return combined[: int(limit)]

    def schedule_maintenance(
        self,
        *,
        title: str,
        description: str,
        start_time: int,
        end_time: int,
        status: str = "scheduled",
    ) -> MaintenanceWindow:
        conn = connect(self.db_path)
        try:
            cur = conn.execute(
                """
                INSERT INTO maintenance_posts (title, description, start_time, end_time, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (title, description, int(start_time), int(end_time), status, now_ms()),
            )
            row = conn.execute("SELECT * FROM maintenance_posts WHERE id=?", (int(cur.lastrowid),)).fetchone()
        finally:
            conn.close()
        return _maintenance_from_row(row)

    def get_active_maintenance(self) -> list[MaintenanceWindow]:
        conn = connect(self.db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM maintenance_posts WHERE end_time > ? ORDER BY start_time ASC", (now_ms(),)
            ).fetchall()
        finally:
            conn.close()
        return [_maintenance_from_row(r) for r in rows]

    def delete_maintenance(self, maintenance_id: int) -> bool:
        conn = connect(self.db_path)
        try:
            cur = conn.execute("DELETE FROM maintenance_posts WHERE id=?", (maintenance_id,))
            return bool(cur.rowcount)
        finally:
            conn.close()

    def clear_resolved(self) -> None:
        conn = connect(self.db_path)
        try:
            conn.execute("DELETE FROM incidents WHERE status=?", (RESOLVED,))
            conn.execute("DELETE FROM maintenance_posts WHERE end_time < ?", (now_ms(),))
        finally:
            conn.close()
