from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Mapping

import aiosqlite

from stockfunnel.core.candidate import Candidate
from stockfunnel.core.types import Bar, ScreenerRun, Timeframe
from stockfunnel.data.store import CandleStore, ResultSink

logger = logging.getLogger(__name__)

Ingestor = Callable[[Timeframe], Awaitable[None]]

# Age of the newest bar beyond which a timeframe is considered stale
_STALE_AFTER: dict[Timeframe, timedelta] = {
    Timeframe.M15: timedelta(days=1),
    Timeframe.H1: timedelta(days=2),
    Timeframe.D1: timedelta(days=4),
    Timeframe.W1: timedelta(days=10),
}

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS bars (
        instrument_id INTEGER NOT NULL,
        timeframe TEXT NOT NULL,
        symbol TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        open REAL NOT NULL,
        high REAL NOT NULL,
        low REAL NOT NULL,
        close REAL NOT NULL,
        volume REAL NOT NULL,
        PRIMARY KEY (instrument_id, timeframe, timestamp)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS candidates (
        run_key TEXT NOT NULL,
        instrument_id INTEGER NOT NULL,
        stage TEXT NOT NULL,
        record TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (run_key, instrument_id, stage)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS progress (
        run_key TEXT NOT NULL,
        snapshot TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ai_evaluations (
        eval_id TEXT PRIMARY KEY,
        status TEXT NOT NULL,
        verdict TEXT,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ai_call_counts (
        day TEXT PRIMARY KEY,
        calls INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS runs (
        run_key TEXT PRIMARY KEY,
        payload TEXT NOT NULL
    )
    """,
)


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


class SQLiteStore(CandleStore, ResultSink):
    """Candle store and result sink backed by one aiosqlite connection.

    Args:
        db_path: SQLite database file.
        ingestor: Optional coroutine called with a stale timeframe by
            ``ensure_fresh``; without one, staleness is only logged.
    """

    def __init__(self, db_path: str, ingestor: Ingestor | None = None) -> None:
        self._db_path = db_path
        self._ingestor = ingestor
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        for statement in _SCHEMA:
            await self._db.execute(statement)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> SQLiteStore:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _conn(self) -> aiosqlite.Connection:
        assert self._db is not None, "SQLiteStore used before initialize()"
        return self._db

    # ------------------------------------------------------------------
    # Candles
    # ------------------------------------------------------------------

    async def save_bars(self, instrument_id: int, timeframe: Timeframe, bars: list[Bar]) -> None:
        db = self._conn()
        await db.executemany(
            "INSERT OR REPLACE INTO bars (instrument_id, timeframe, symbol, timestamp, open, high, low, close, volume) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (instrument_id, timeframe.value, b.symbol, b.timestamp.isoformat(),
                 b.open, b.high, b.low, b.close, b.volume)
                for b in bars
            ],
        )
        await db.commit()

    async def load_series(self, instrument_id: int, timeframe: Timeframe, limit: int) -> list[Bar]:
        if limit <= 0:
            return []
        cursor = await self._conn().execute(
            "SELECT symbol, timestamp, open, high, low, close, volume FROM bars "
            "WHERE instrument_id = ? AND timeframe = ? ORDER BY timestamp DESC LIMIT ?",
            (instrument_id, timeframe.value, limit),
        )
        rows = await cursor.fetchall()
        return [
            Bar(
                symbol=r[0],
                timestamp=datetime.fromisoformat(r[1]),
                open=r[2], high=r[3], low=r[4], close=r[5], volume=r[6],
            )
            for r in reversed(rows)
        ]

    async def _latest_timestamp(self, timeframe: Timeframe) -> datetime | None:
        cursor = await self._conn().execute(
            "SELECT MAX(timestamp) FROM bars WHERE timeframe = ?", (timeframe.value,),
        )
        row = await cursor.fetchone()
        return datetime.fromisoformat(row[0]) if row and row[0] else None

    async def ensure_fresh(self, timeframes: Iterable[Timeframe]) -> dict[str, Any]:
        report: dict[str, Any] = {}
        now = datetime.now(tz=timezone.utc)
        for tf in timeframes:
            latest = await self._latest_timestamp(tf)
            if latest is not None and latest.tzinfo is None:
                latest = latest.replace(tzinfo=timezone.utc)
            stale = latest is None or now - latest > _STALE_AFTER[tf]
            if stale and self._ingestor is not None:
                logger.info("Candles for %s are stale (latest=%s), ingesting", tf.value, latest)
                await self._ingestor(tf)
                latest = await self._latest_timestamp(tf)
                stale = False
            elif stale:
                logger.warning("Candles for %s are stale (latest=%s)", tf.value, latest)
            report[tf.value] = {
                "latest": latest.isoformat() if latest else None,
                "stale": stale,
            }
        return report

    # ------------------------------------------------------------------
    # Result sink
    # ------------------------------------------------------------------

    async def save_candidate(self, run_key: str, candidate: Candidate, stage: str) -> None:
        db = self._conn()
        await db.execute(
            "INSERT OR REPLACE INTO candidates (run_key, instrument_id, stage, record, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (run_key, candidate.instrument_id, stage, json.dumps(candidate.to_record()), _now()),
        )
        await db.commit()

    async def load_candidate(self, run_key: str, instrument_id: int, stage: str) -> Candidate | None:
        cursor = await self._conn().execute(
            "SELECT record FROM candidates WHERE run_key = ? AND instrument_id = ? AND stage = ?",
            (run_key, instrument_id, stage),
        )
        row = await cursor.fetchone()
        return Candidate.from_record(json.loads(row[0])) if row else None

    async def publish_progress(self, run_key: str, snapshot: Mapping[str, Any]) -> None:
        db = self._conn()
        await db.execute(
            "INSERT INTO progress (run_key, snapshot, created_at) VALUES (?, ?, ?)",
            (run_key, json.dumps(dict(snapshot)), _now()),
        )
        await db.commit()

    async def latest_progress(self, run_key: str) -> dict[str, Any] | None:
        cursor = await self._conn().execute(
            "SELECT snapshot FROM progress WHERE run_key = ? ORDER BY rowid DESC LIMIT 1",
            (run_key,),
        )
        row = await cursor.fetchone()
        return json.loads(row[0]) if row else None

    async def ai_record(self, eval_id: str) -> dict[str, Any] | None:
        cursor = await self._conn().execute(
            "SELECT status, verdict FROM ai_evaluations WHERE eval_id = ?", (eval_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return {"status": row[0], "verdict": json.loads(row[1]) if row[1] else None}

    async def mark_ai(self, eval_id: str, status: str, verdict: Mapping[str, Any] | None = None) -> None:
        db = self._conn()
        await db.execute(
            "INSERT OR REPLACE INTO ai_evaluations (eval_id, status, verdict, updated_at) VALUES (?, ?, ?, ?)",
            (eval_id, status, json.dumps(dict(verdict)) if verdict else None, _now()),
        )
        await db.commit()

    async def ai_calls_on(self, day: str) -> int:
        cursor = await self._conn().execute("SELECT calls FROM ai_call_counts WHERE day = ?", (day,))
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def record_ai_call(self, day: str) -> int:
        db = self._conn()
        await db.execute(
            "INSERT INTO ai_call_counts (day, calls) VALUES (?, 1) "
            "ON CONFLICT(day) DO UPDATE SET calls = calls + 1",
            (day,),
        )
        await db.commit()
        return await self.ai_calls_on(day)

    async def save_run(self, run: ScreenerRun) -> None:
        db = self._conn()
        await db.execute(
            "INSERT OR REPLACE INTO runs (run_key, payload) VALUES (?, ?)",
            (run.key, json.dumps(run.to_dict())),
        )
        await db.commit()

    async def load_run(self, run_key: str) -> dict[str, Any] | None:
        cursor = await self._conn().execute("SELECT payload FROM runs WHERE run_key = ?", (run_key,))
        row = await cursor.fetchone()
        return json.loads(row[0]) if row else None
