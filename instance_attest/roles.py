"""
Role persistence on SQLite.

Roles are validated by the Role model before they are written, so a
malformed trusted prefix is rejected here rather than at login time.
"""

from typing import List, Optional

from .db import Database
from .errors import RoleNotFound
from .logging_config import audit_log
from .models import Role


class RoleStore:

    def __init__(self, db: Database):
        self._db = db

    def put(self, role: Role) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO roles(name, role_json) VALUES(?,?)",
                (role.name, role.model_dump_json())
            )
        audit_log.role_written(role.name)

    def get(self, name: str) -> Optional[Role]:
        row = self._db.connection().execute(
            "SELECT role_json FROM roles WHERE name=?", (name,)
        ).fetchone()
        if row is None:
            return None
        return Role.model_validate_json(row["role_json"])

    def require(self, name: str) -> Role:
        role = self.get(name)
        if role is None:
            raise RoleNotFound(name)
        return role

    def delete(self, name: str) -> bool:
        with self._db.transaction() as conn:
            cur = conn.execute("DELETE FROM roles WHERE name=?", (name,))
        if cur.rowcount:
            audit_log.role_deleted(name)
        return cur.rowcount == 1

    def list_names(self) -> List[str]:
        cur = self._db.connection().execute("SELECT name FROM roles ORDER BY name ASC")
        return [row["name"] for row in cur.fetchall()]
