from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Type


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BaseRepository:
    def __init__(self, manager, table_name: str, model_class: Optional[Type] = None):
        self.manager = manager
        self.table_name = table_name
        self.model_class = model_class

    @property
    def ph(self) -> str:
        return self.manager.placeholder

    def _to_model(self, row: Dict[str, Any]) -> Any:
        if self.model_class:
            return self.model_class(**row)
        return row

    def _fetch_all(self, query: str, params: Sequence[Any] = ()) -> List[Any]:
        conn = self.manager.get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(query, tuple(params))
            rows = cursor.fetchall()
            return [self._to_model(dict(row)) for row in rows]
        finally:
            conn.close()

    def _fetch_one(self, query: str, params: Sequence[Any] = ()) -> Optional[Any]:
        conn = self.manager.get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(query, tuple(params))
            row = cursor.fetchone()
            return self._to_model(dict(row)) if row else None
        finally:
            conn.close()

    def _execute(self, query: str, params: Sequence[Any] = ()) -> int:
        conn = self.manager.get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(query, tuple(params))
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def get(self, id: Any) -> Optional[Any]:
        return self._fetch_one(
            f"SELECT * FROM {self.table_name} WHERE id = {self.ph}", (id,)
        )

    def get_all(self, order_by: str = "id") -> List[Any]:
        return self._fetch_all(f"SELECT * FROM {self.table_name} ORDER BY {order_by}")

    def create(self, **data) -> Any:
        """Insert a row. Rows keyed by an explicit ``id`` are read back by it,
        autoincrement rows by the generated id."""
        conn = self.manager.get_connection()
        try:
            cursor = conn.cursor()
            columns = ", ".join(data.keys())
            placeholders = ", ".join([self.ph] * len(data))
            query = f"INSERT INTO {self.table_name} ({columns}) VALUES ({placeholders})"

            if "id" in data:
                cursor.execute(query, tuple(data.values()))
                row_id = data["id"]
            elif self.manager.db_type == "sqlite":
                cursor.execute(query, tuple(data.values()))
                row_id = cursor.lastrowid
            else:
                cursor.execute(query + " RETURNING id", tuple(data.values()))
                row_id = cursor.fetchone()["id"]

            conn.commit()
        finally:
            conn.close()

        return self.get(row_id)

    def update(self, id: Any, **kwargs) -> Optional[Any]:
        if not kwargs:
            return self.get(id)

        set_clause = ", ".join([f"{k} = {self.ph}" for k in kwargs.keys()])
        values = list(kwargs.values())
        values.append(id)
        rowcount = self._execute(
            f"UPDATE {self.table_name} SET {set_clause} WHERE id = {self.ph}", values
        )
        if rowcount == 0:
            return None
        return self.get(id)

    def delete(self, id: Any) -> bool:
        rowcount = self._execute(
            f"DELETE FROM {self.table_name} WHERE id = {self.ph}", (id,)
        )
        return rowcount > 0
