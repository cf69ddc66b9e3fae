"""SQLite persistence layer for tickers and their fiscal periods."""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine

from intrinsic.domain.models.periods import (
    FLOAT_FIELDS,
    PAYLOAD_FIELDS,
    EntityType,
    PeriodRecord,
    parse_period,
)
from intrinsic.domain.services.arithmetic import round_half_away

logger = logging.getLogger(__name__)


class EntityTypeMismatchError(ValueError):
    """Raised when a write would change the reporting schema of a ticker."""


class PeriodNotFoundError(LookupError):
    """Raised when deleting a period that is not stored."""


def _column_type(name: str) -> str:
    return "REAL" if name in FLOAT_FIELDS else "INTEGER"


def _to_storage(name: str, value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return float(value) if name in FLOAT_FIELDS else int(round_half_away(value))


class SQLiteRepository:
    """Gateway for reading and writing period records.

    Every write runs in its own transaction; readers get a fresh list, so
    callers can hand it to the metrics engine as an immutable snapshot.
    """

    def __init__(self, database_uri: str, *, echo: bool = False) -> None:
        self._engine: Engine = create_engine(database_uri, echo=echo, future=True)
        event.listen(self._engine, "connect", _enable_foreign_keys)
        self._ensure_schema()

    @property
    def engine(self) -> Engine:
        return self._engine

    # -----------------
    # Schema management
    # -----------------
    def _ensure_schema(self) -> None:
        """Create core tables if they do not already exist."""
        payload_columns = ",\n".join(f"  {name} {_column_type(name)}" for name in PAYLOAD_FIELDS)
        ddl = [
            """
            CREATE TABLE IF NOT EXISTS tickers (
              ticker TEXT PRIMARY KEY,
              entity_type TEXT NOT NULL DEFAULT 'generic',
              last_update INTEGER NOT NULL,
              portfolio INTEGER NOT NULL DEFAULT 0
            );
            """,
            """CREATE INDEX IF NOT EXISTS idx_tickers_order ON tickers(last_update DESC, ticker ASC);""",
            f"""
            CREATE TABLE IF NOT EXISTS periods (
              ticker TEXT NOT NULL,
              year INTEGER NOT NULL,
              period_code TEXT NOT NULL,
{payload_columns},
              PRIMARY KEY (ticker, year, period_code),
              FOREIGN KEY (ticker) REFERENCES tickers(ticker) ON DELETE CASCADE
            );
            """,
        ]
        with self._engine.begin() as conn:
            for statement in ddl:
                conn.execute(text(statement))

    # ---------------
    # Tickers
    # ---------------
    def get_entity_type(self, ticker: str) -> Optional[EntityType]:
        with self._engine.connect() as conn:
            return self._entity_type(conn, ticker)

    @staticmethod
    def _entity_type(conn: Connection, ticker: str) -> Optional[EntityType]:
        row = conn.execute(
            text("SELECT entity_type FROM tickers WHERE ticker = :ticker"), {"ticker": ticker}
        ).first()
        return EntityType(row[0]) if row else None

    def list_tickers(self, *, portfolio_only: bool = False) -> List[Dict[str, Any]]:
        """Tickers ordered by most recent update."""
        where = "WHERE portfolio = 1" if portfolio_only else ""
        query = text(
            f"""
            SELECT t.ticker, t.entity_type, t.last_update, t.portfolio, COUNT(p.year) AS periods
            FROM tickers t
            LEFT JOIN periods p ON p.ticker = t.ticker
            {where}
            GROUP BY t.ticker
            ORDER BY t.last_update DESC, t.ticker ASC
            """
        )
        with self._engine.connect() as conn:
            return [dict(row) for row in conn.execute(query).mappings()]

    def toggle_portfolio(self, ticker: str) -> bool:
        """Flip the portfolio flag; returns the new state."""
        with self._engine.begin() as conn:
            row = conn.execute(
                text("SELECT portfolio FROM tickers WHERE ticker = :ticker"), {"ticker": ticker}
            ).first()
            if row is None:
                raise LookupError(f"Unknown ticker {ticker!r}.")
            flag = 0 if row[0] else 1
            conn.execute(
                text("UPDATE tickers SET portfolio = :flag WHERE ticker = :ticker"),
                {"flag": flag, "ticker": ticker},
            )
        return bool(flag)

    # ---------------
    # Periods CRUD
    # ---------------
    def fetch_periods(self, ticker: str) -> List[PeriodRecord]:
        """All periods of ``ticker`` ordered by fiscal year then period code."""
        columns = ", ".join(f"p.{name}" for name in PAYLOAD_FIELDS)
        query = text(
            f"""
            SELECT p.ticker, p.year, p.period_code, t.entity_type, {columns}
            FROM periods p
            JOIN tickers t ON t.ticker = p.ticker
            WHERE p.ticker = :ticker
            ORDER BY p.year ASC, p.period_code ASC
            """
        )
        with self._engine.connect() as conn:
            rows = conn.execute(query, {"ticker": ticker}).mappings()
            return [
                PeriodRecord(
                    ticker=row["ticker"],
                    year=int(row["year"]),
                    period_code=row["period_code"],
                    entity_type=EntityType(row["entity_type"]),
                    **{name: row[name] for name in PAYLOAD_FIELDS},
                )
                for row in rows
            ]

    def upsert_period(self, record: PeriodRecord) -> PeriodRecord:
        """Insert or replace one period keyed on ``(ticker, year, period_code)``.

        Returns the record as stored, including write-time derived fields.
        """
        # Validates the code.
        parse_period(f"{record.year:04d}-{record.period_code}")
        stored = record.with_write_time_fields()

        with self._engine.begin() as conn:
            existing = self._entity_type(conn, stored.ticker)
            if existing is not None and existing is not stored.entity_type:
                logger.warning(
                    "Rejected %s write for %s: ticker is %s", stored.entity_type.value, stored.ticker, existing.value
                )
                raise EntityTypeMismatchError(
                    f"Ticker {stored.ticker} is {existing.value}; cannot store a {stored.entity_type.value} period."
                )
            conn.execute(
                text(
                    """
                    INSERT INTO tickers (ticker, entity_type, last_update)
                    VALUES (:ticker, :entity_type, :now)
                    ON CONFLICT(ticker) DO UPDATE SET last_update = excluded.last_update
                    """
                ),
                {"ticker": stored.ticker, "entity_type": stored.entity_type.value, "now": int(time.time())},
            )

            columns = ", ".join(PAYLOAD_FIELDS)
            placeholders = ", ".join(f":{name}" for name in PAYLOAD_FIELDS)
            updates = ",\n".join(f"{name}=excluded.{name}" for name in PAYLOAD_FIELDS)
            params: Dict[str, Any] = {
                name: _to_storage(name, getattr(stored, name)) for name in PAYLOAD_FIELDS
            }
            params.update(ticker=stored.ticker, year=stored.year, period_code=stored.period_code)
            conn.execute(
                text(
                    f"""
                    INSERT INTO periods (ticker, year, period_code, {columns})
                    VALUES (:ticker, :year, :period_code, {placeholders})
                    ON CONFLICT(ticker, year, period_code) DO UPDATE SET
                    {updates}
                    """
                ),
                params,
            )
        logger.info("Stored %s %s-%s", stored.ticker, stored.year, stored.period_code)
        return stored

    def delete_period(self, ticker: str, period: str) -> bool:
        """Delete one period; drops the ticker when it was its last period.

        Returns True when the ticker itself was removed.
        """
        year, code = parse_period(period)
        with self._engine.begin() as conn:
            result = conn.execute(
                text("DELETE FROM periods WHERE ticker = :ticker AND year = :year AND period_code = :code"),
                {"ticker": ticker, "year": year, "code": code},
            )
            if result.rowcount == 0:
                raise PeriodNotFoundError(f"No period {year}-{code} stored for {ticker}.")
            remaining = conn.execute(
                text("SELECT COUNT(*) FROM periods WHERE ticker = :ticker"), {"ticker": ticker}
            ).scalar_one()
            ticker_removed = remaining == 0
            if ticker_removed:
                conn.execute(text("DELETE FROM tickers WHERE ticker = :ticker"), {"ticker": ticker})
        logger.info("Deleted %s %s-%s%s", ticker, year, code, " and ticker" if ticker_removed else "")
        return ticker_removed


def _enable_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
