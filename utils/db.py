"""
Database utilities for SQLite operations.

Provides connection management, schema initialization and the dispensing
repository: checkpoint lookup (max source_id per store) and page inserts.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Iterable, Optional

from utils.config import settings
from utils.errors import PersistenceError
from utils.schemas import DispensingRecord

logger = logging.getLogger(__name__)

# column -> SQL type, in insert order
COLUMNS: dict[str, str] = {
    "store_code": "TEXT NOT NULL",
    "occurred_at": "TEXT NOT NULL",
    "accounting_day": "TEXT NOT NULL",
    "device_type": "TEXT",
    "store_link": "TEXT",
    "store_name": "TEXT",
    "store_id": "TEXT NOT NULL",
    "amount": "NUMERIC",
    "volume": "NUMERIC",
    "card_id": "TEXT",
    "lot_number": "INTEGER",
    "movement_number": "INTEGER",
    "operation_mode": "TEXT",
    "payment_mode": "TEXT",
    "nozzle_number": "INTEGER",
    "pump_number": "INTEGER",
    "unit_price": "NUMERIC",
    "product_code": "TEXT",
    "product_name": "TEXT",
    "card_type": "TEXT",
    "price_type": "TEXT",
    "totalizer_electronic": "INTEGER",
    "totalizer_mechanical": "INTEGER",
    "transaction_number": "INTEGER",
    "source_id": "INTEGER NOT NULL",
}


def get_conn(path: Optional[str] = None) -> sqlite3.Connection:
    """
    Get SQLite database connection with dict-friendly row factory.

    Args:
        path: Database file, defaults to settings.SQLITE_PATH

    Returns:
        SQLite connection with row_factory set to sqlite3.Row

    Raises:
        sqlite3.Error: If connection fails
    """
    db_path = Path(path or settings.SQLITE_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_schema(conn: sqlite3.Connection, table: str) -> None:
    """
    Create the dispensing table and its uniqueness guard if they don't exist.

    Args:
        conn: Open connection
        table: Table name, already validated as a plain identifier

    Raises:
        sqlite3.Error: If schema creation fails
    """
    columns_sql = ",\n                ".join(f"{name} {kind}" for name, kind in COLUMNS.items())
    with conn:
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                {columns_sql}
            )
        """)
        conn.execute(
            f"CREATE UNIQUE INDEX IF NOT EXISTS ux_{table}_store_source "
            f"ON {table} (store_id, source_id)"
        )

    logger.info("DB schema ready", extra={"table": table})


def record_params(record: DispensingRecord, store_id: Optional[str] = None) -> tuple:
    """Bind a record to the insert statement, in COLUMNS order.

    When store_id is given it replaces the record's own IMPIANTO.storeID, so
    rows land under the store the checkpoint is computed for.
    """
    values = record.model_dump()
    if store_id is not None:
        values["store_id"] = store_id
    params = []
    for name in COLUMNS:
        value = values[name]
        if name in ("occurred_at", "accounting_day"):
            value = value.isoformat()
        elif name in ("amount", "volume", "unit_price"):
            value = str(value)
        params.append(value)
    return tuple(params)


class DispensingRepository:
    """Checkpoint store and append-only sink over one SQLite table."""

    def __init__(self, conn: sqlite3.Connection, table: str) -> None:
        self.conn = conn
        self.table = table
        self._insert_sql = (
            f"INSERT INTO {table} ({', '.join(COLUMNS)}) "
            f"VALUES ({', '.join('?' for _ in COLUMNS)})"
        )

    def get_checkpoints(self) -> dict[str, int]:
        """
        Highest persisted source_id per store.

        Stores without persisted records are absent from the mapping.
        """
        rows = self.conn.execute(
            f"SELECT store_id, MAX(source_id) AS last_id FROM {self.table} GROUP BY store_id"
        ).fetchall()
        return {row["store_id"]: row["last_id"] for row in rows}

    def insert_page(self, store_id: str, records: Iterable[DispensingRecord]) -> int:
        """
        Insert one page of records in the given order, atomically.

        Args:
            store_id: Store being synchronized; every row is stored under it
            records: Normalized records in upstream order

        Returns:
            Number of inserted rows

        Raises:
            PersistenceError: If any insert fails; the whole page is rolled back
        """
        inserted = 0
        current: Optional[DispensingRecord] = None
        try:
            with self.conn:
                for current in records:
                    self.conn.execute(self._insert_sql, record_params(current, store_id))
                    inserted += 1
        except sqlite3.Error as e:
            source_id = current.source_id if current is not None else None
            raise PersistenceError(
                f"Insert rejected for store {store_id}, source_id {source_id}: {e}",
                store_id=store_id,
                source_id=source_id,
            ) from e

        return inserted

    def count(self, store_id: Optional[str] = None) -> int:
        """Number of persisted records, optionally for one store."""
        if store_id is None:
            row = self.conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()
        else:
            row = self.conn.execute(
                f"SELECT COUNT(*) FROM {self.table} WHERE store_id = ?", (store_id,)
            ).fetchone()
        return row[0]
