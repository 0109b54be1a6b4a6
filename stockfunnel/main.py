"""Command-line entry point: one screening run over the instrument master.

Usage:
    stockfunnel --type swing
    stockfunnel --type longterm --run-id 2026-10-19-am
    stockfunnel --type swing --universe data/instruments.csv --db data/stockfunnel.db
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from stockfunnel.ai.client import HttpJudgeClient
from stockfunnel.core.cache import MemoryCache
from stockfunnel.core.config import Settings, load_settings
from stockfunnel.core.exceptions import UniverseLoadError
from stockfunnel.core.logger import setup_logging
from stockfunnel.data.sqlite_store import SQLiteStore
from stockfunnel.pipeline import PipelineResult, ScreeningPipeline
from stockfunnel.universe.loader import CsvInstrumentSource, UniverseLoader

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Equity screening funnel")
    parser.add_argument(
        "--config", default="config/default.yaml",
        help="YAML settings file (default: config/default.yaml)",
    )
    parser.add_argument(
        "--type", dest="screener_type", choices=("swing", "longterm"), default="swing",
        help="Screener to run (default: swing)",
    )
    parser.add_argument("--run-id", default=None, help="Run identifier for AI idempotency (default: today)")
    parser.add_argument("--universe", default=None, help="Instrument master CSV path or URL")
    parser.add_argument("--db", default=None, help="SQLite database path")
    return parser.parse_args(argv)


def _settings(path: str) -> Settings:
    config_path = Path(path)
    if config_path.exists():
        return load_settings(config_path)
    return Settings()


async def run(settings: Settings, args: argparse.Namespace) -> PipelineResult:
    universe_path = args.universe or settings.universe.csv_path
    if not universe_path:
        raise UniverseLoadError("No instrument master configured (universe.csv_path or --universe)")

    judge = HttpJudgeClient(settings.ai) if settings.ai.enabled else None
    async with SQLiteStore(args.db or settings.data.sqlite_path) as store:
        pipeline = ScreeningPipeline(
            settings,
            candle_store=store,
            universe=UniverseLoader(CsvInstrumentSource(universe_path)),
            sink=store,
            judge=judge,
            cache=MemoryCache(),
        )
        return await pipeline.run(args.screener_type, run_id=args.run_id)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    load_dotenv(Path("config/.env"))
    settings = _settings(args.config)
    setup_logging("stockfunnel", level=settings.system.log_level, log_dir=settings.system.log_dir)

    try:
        result = asyncio.run(run(settings, args))
    except UniverseLoadError as exc:
        logger.error("Run aborted: %s", exc)
        sys.exit(1)

    print(json.dumps(result.selection.to_dict(), indent=2, default=str))


if __name__ == "__main__":
    main()
