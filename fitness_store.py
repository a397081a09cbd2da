"""
fitness_store.py — The Fitness Tracker Data Layer
Remote tabular store with four collections, backed by Google Sheets
(one worksheet per collection) or by in-process lists for local mode.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Union

from google.auth.exceptions import GoogleAuthError
from gspread.exceptions import GSpreadException, WorksheetNotFound

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────
# Schema
# ─────────────────────────────────────────────

COLLECTIONS: dict[str, dict[str, type]] = {
    "exercises": {
        "id": str,
        "name": str,
        "muscle_group": str,
        "reps_target": str,
        "instructions": str,
        "video_url": str,
        "description": str,
        "created_at": str,
    },
    "workouts": {
        "id": str,
        "name": str,
        "date": str,
        "notes": str,
        "created_at": str,
    },
    "workout_exercises": {
        "id": str,
        "workout_id": str,
        "exercise_id": str,
        "sets": int,
        "reps": int,
        "weight_kg": float,
        "duration_minutes": int,
        "notes": str,
        "created_at": str,
    },
    "daily_logs": {
        "id": str,
        "date": str,
        "completed": bool,
        "notes": str,
        "created_at": str,
    },
}

UNIQUE_COLUMNS = {
    "daily_logs": ["date"],
}

# parent table -> (child table, foreign key column)
CASCADES = {
    "workouts": [("workout_exercises", "workout_id")],
}


class StoreError(Exception):
    """A store call failed (network, API, schema or constraint violation)."""


class NotFoundError(StoreError):
    """A single-row select matched no rows."""

    def __init__(self, table: str, filters: Optional[dict] = None):
        self.table = table
        self.filters = filters or {}
        super().__init__(f"No matching row in {table}")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sort_key(value):
    return (value is None, value if value is not None else "")


def _matches(record: dict, eq: Optional[dict]) -> bool:
    if not eq:
        return True
    return all(record.get(col) == val for col, val in eq.items())


# ─────────────────────────────────────────────
# Generic Query Engine
# ─────────────────────────────────────────────

class TabularStore:
    """
    Select / insert / update / upsert / delete over named collections.

    Subclasses provide raw row access (`_read`, `_append`, `_replace`,
    `_remove`, `_columns`); filtering, ordering, limits, constraint checks
    and cascades are shared here.
    """

    def ensure_schema(self) -> None:
        """Create any missing collections. Backends without setup do nothing."""

    # --- raw row access (backend specific) ---

    def _columns(self, table: str) -> list[str]:
        raise NotImplementedError

    def _read(self, table: str) -> list[dict]:
        raise NotImplementedError

    def _append(self, table: str, records: list[dict]) -> None:
        raise NotImplementedError

    def _replace(self, table: str, index: int, record: dict) -> None:
        raise NotImplementedError

    def _remove(self, table: str, indexes: list[int]) -> None:
        raise NotImplementedError

    # --- helpers ---

    def _schema(self, table: str) -> dict[str, type]:
        if table not in COLLECTIONS:
            raise StoreError(f'relation "{table}" does not exist')
        return COLLECTIONS[table]

    def _blank(self, table: str) -> dict:
        return {col: None for col in self._schema(table)}

    def _check_columns(self, table: str, columns) -> None:
        known = set(self._columns(table))
        for col in columns:
            if col not in known:
                raise StoreError(f"column {table}.{col} does not exist")

    def _check_unique(self, table: str, rows: list[dict], candidate: dict,
                      skip_index: Optional[int] = None) -> None:
        for col in UNIQUE_COLUMNS.get(table, []):
            value = candidate.get(col)
            if value is None:
                continue
            for i, row in enumerate(rows):
                if i != skip_index and row.get(col) == value:
                    raise StoreError(
                        f'duplicate key value violates unique constraint "{table}_{col}_key"'
                    )

    def _prepare(self, table: str, values: dict) -> dict:
        self._check_columns(table, values.keys())
        record = self._blank(table)
        record.update(values)
        if not record.get("id"):
            record["id"] = str(uuid.uuid4())
        if "created_at" in record and not record.get("created_at"):
            record["created_at"] = _now_iso()
        return record

    # --- public API ---

    def select(
        self,
        table: str,
        columns: Optional[list[str]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
        eq: Optional[dict] = None,
        single: bool = False,
    ) -> Union[list[dict], dict]:
        """
        Fetch rows from `table`.
        NULLs sort last ascending and first descending. With `single=True`
        exactly one row must match; it is returned as a dict.
        """
        self._schema(table)
        rows = self._read(table)
        wanted = list(columns) if columns else None
        check = list(wanted or [])
        if order_by:
            check.append(order_by)
        if eq:
            check.extend(eq.keys())
        self._check_columns(table, check)

        rows = [r for r in rows if _matches(r, eq)]
        if order_by:
            rows.sort(key=lambda r: _sort_key(r.get(order_by)), reverse=not ascending)
        if limit is not None:
            rows = rows[:limit]
        if wanted:
            rows = [{col: r.get(col) for col in wanted} for r in rows]

        if single:
            if not rows:
                raise NotFoundError(table, eq)
            if len(rows) > 1:
                raise StoreError(f"Expected a single row from {table}, got {len(rows)}")
            return rows[0]
        return rows

    def insert(self, table: str, values: Union[dict, list[dict]]) -> Union[dict, list[dict]]:
        """Insert one record (dict) or a batch (list). Returns the stored rows."""
        self._schema(table)
        batch = values if isinstance(values, list) else [values]
        existing = self._read(table)
        prepared = []
        for item in batch:
            record = self._prepare(table, item)
            self._check_unique(table, existing + prepared, record)
            prepared.append(record)
        if prepared:
            self._append(table, prepared)
        logger.info("insert %s: %s", table, [r["id"] for r in prepared])
        return prepared if isinstance(values, list) else prepared[0]

    def update(self, table: str, values: dict, eq: dict) -> list[dict]:
        """Patch the given columns on every row matching `eq`."""
        self._schema(table)
        rows = self._read(table)
        self._check_columns(table, list(values.keys()) + list(eq.keys()))
        updated = []
        for i, row in enumerate(rows):
            if not _matches(row, eq):
                continue
            new_row = {**row, **values}
            self._check_unique(table, rows, new_row, skip_index=i)
            self._replace(table, i, new_row)
            updated.append(new_row)
        logger.info("update %s where %s: %d row(s)", table, eq, len(updated))
        return updated

    def upsert(self, table: str, values: dict, on_conflict: str) -> dict:
        """
        Insert `values`, or replace the row whose `on_conflict` column
        holds the same value. A replaced row keeps its id and created_at;
        every other column takes the new value.
        """
        self._schema(table)
        rows = self._read(table)
        self._check_columns(table, list(values.keys()) + [on_conflict])
        key = values.get(on_conflict)
        for i, row in enumerate(rows):
            if key is not None and row.get(on_conflict) == key:
                record = self._blank(table)
                record.update(values)
                record["id"] = row.get("id")
                if "created_at" in record:
                    record["created_at"] = row.get("created_at")
                self._replace(table, i, record)
                logger.info("upsert %s: replaced %s", table, record["id"])
                return record
        record = self._prepare(table, values)
        self._check_unique(table, rows, record)
        self._append(table, [record])
        logger.info("upsert %s: inserted %s", table, record["id"])
        return record

    def delete(self, table: str, eq: dict) -> int:
        """Delete every row matching `eq` and cascade to dependent rows."""
        self._schema(table)
        rows = self._read(table)
        self._check_columns(table, eq.keys())
        doomed = [i for i, row in enumerate(rows) if _matches(row, eq)]
        doomed_ids = [rows[i].get("id") for i in doomed]
        for child, fk in CASCADES.get(table, []):
            for parent_id in doomed_ids:
                self.delete(child, {fk: parent_id})
        if doomed:
            self._remove(table, doomed)
        logger.info("delete %s where %s: %d row(s)", table, eq, len(doomed))
        return len(doomed)


# ─────────────────────────────────────────────
# In-Memory Backend
# ─────────────────────────────────────────────

class MemoryStore(TabularStore):
    """Keeps every collection in process memory. Lost when the session ends."""

    def __init__(self, seed: Optional[dict[str, list[dict]]] = None):
        self._tables: dict[str, list[dict]] = {name: [] for name in COLLECTIONS}
        for table, records in (seed or {}).items():
            self.insert(table, records)

    def _columns(self, table: str) -> list[str]:
        return list(self._schema(table))

    def _read(self, table: str) -> list[dict]:
        return [dict(r) for r in self._tables[table]]

    def _append(self, table: str, records: list[dict]) -> None:
        self._tables[table].extend(dict(r) for r in records)

    def _replace(self, table: str, index: int, record: dict) -> None:
        self._tables[table][index] = dict(record)

    def _remove(self, table: str, indexes: list[int]) -> None:
        for i in sorted(indexes, reverse=True):
            del self._tables[table][i]


# ─────────────────────────────────────────────
# Google Sheets Backend
# ─────────────────────────────────────────────

def encode_cell(value) -> Union[str, int, float]:
    """Python value -> sheet cell. None becomes an empty cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    return value


def decode_cell(raw, kind: type):
    """Sheet cell (always read as text) -> typed Python value."""
    if raw is None:
        return None
    text = str(raw).strip()
    if text == "":
        return None
    if kind is bool:
        return text.upper() in ("TRUE", "1", "YES")
    if kind is int:
        try:
            return int(float(text))
        except ValueError:
            return None
    if kind is float:
        try:
            return float(text)
        except ValueError:
            return None
    return str(raw)


class SheetStore(TabularStore):
    """
    One worksheet per collection inside a single spreadsheet.
    Row 1 holds the column headers; records start at row 2.
    """

    def __init__(self, spreadsheet):
        self.spreadsheet = spreadsheet
        self._worksheets: dict = {}
        self._headers: dict[str, list[str]] = {}

    def _call(self, action: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except WorksheetNotFound as e:
            logger.error("Sheets %s failed: missing worksheet %s", action, e)
            raise StoreError(f'relation "{e}" does not exist') from e
        except (GSpreadException, GoogleAuthError, OSError) as e:
            logger.error("Sheets %s failed: %s", action, e)
            raise StoreError(str(e) or e.__class__.__name__) from e

    def ensure_schema(self) -> None:
        """Make sure every collection tab exists with its header row."""
        existing = [ws.title for ws in self._call("list worksheets", self.spreadsheet.worksheets)]
        for table, schema in COLLECTIONS.items():
            if table not in existing:
                ws = self._call(
                    "add worksheet", self.spreadsheet.add_worksheet,
                    title=table, rows=1000, cols=len(schema),
                )
                self._call("write header", ws.append_row, list(schema))
                self._worksheets[table] = ws
                self._headers[table] = list(schema)

    def _worksheet(self, table: str):
        self._schema(table)
        if table not in self._worksheets:
            self._worksheets[table] = self._call("open worksheet", self.spreadsheet.worksheet, table)
        return self._worksheets[table]

    def _values(self, table: str) -> list[list]:
        values = self._call("read", self._worksheet(table).get_all_values)
        if values:
            self._headers[table] = [str(h).strip() for h in values[0]]
        else:
            self._headers[table] = []
        return values

    def _columns(self, table: str) -> list[str]:
        if table not in self._headers:
            self._values(table)
        return self._headers[table]

    def _read(self, table: str) -> list[dict]:
        schema = self._schema(table)
        values = self._values(table)
        header = self._headers[table]
        records = []
        for row in values[1:]:
            padded = list(row) + [""] * (len(header) - len(row))
            records.append({
                col: decode_cell(padded[i], schema.get(col, str))
                for i, col in enumerate(header) if col
            })
        return records

    def _row(self, table: str, record: dict) -> list:
        return [encode_cell(record.get(col)) for col in self._columns(table)]

    def _append(self, table: str, records: list[dict]) -> None:
        rows = [self._row(table, r) for r in records]
        self._call("append", self._worksheet(table).append_rows, rows)

    def _replace(self, table: str, index: int, record: dict) -> None:
        # +2: one for the header row, one for 1-based row numbers
        self._call(
            "update", self._worksheet(table).update,
            range_name=f"A{index + 2}", values=[self._row(table, record)],
        )

    def _remove(self, table: str, indexes: list[int]) -> None:
        ws = self._worksheet(table)
        for i in sorted(indexes, reverse=True):
            self._call("delete", ws.delete_rows, i + 2)
