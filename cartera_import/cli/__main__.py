from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from cartera_import.config.loader import DEFAULT_CONFIG_PATH, ConfigError, ImportConfig, load_config
from cartera_import.db.repository import PostgresRepository
from cartera_import.logging.init import log_summary, setup_logging
from cartera_import.models.classified_row import Classification
from cartera_import.models.import_run import ImportKind
from cartera_import.models.processing_result import PreviewSummary
from cartera_import.services import ProcessingError, build_pipeline
from cartera_import.services.summary import render_summary_line
from cartera_import.tabular.reader import DecodeError, EmptyInputError, MissingColumnsError

"""CLI entrypoint.

    cartera-import preview {procesos|acuerdos} FILE
    cartera-import execute {procesos|acuerdos} FILE --operator ID

Exit codes: 0 success, 2 run completed with errors or failed, 1 fatal
(configuration, unreadable file, database connection).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _dsn(cfg: ImportConfig) -> str:
    """Connection string; environment (.env included) wins over the config file."""
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _db_cursor(cfg: ImportConfig) -> Iterator[Any]:  # pragma: no cover (needs a live database)
    conn = psycopg2.connect(_dsn(cfg))
    # ledger writes persist immediately; batches issue their own BEGIN/COMMIT
    conn.autocommit = True
    try:
        with conn.cursor() as cur:
            yield cur
    finally:
        conn.close()


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="cartera-import", description="Bulk import of cases and payment agreements"
    )
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML configuration file")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)
    kinds = [k.value for k in ImportKind]

    preview = sub.add_parser("preview", help="Classify rows without writing")
    preview.add_argument("kind", choices=kinds)
    preview.add_argument("file", type=Path)

    execute = sub.add_parser("execute", help="Import matched rows")
    execute.add_argument("kind", choices=kinds)
    execute.add_argument("file", type=Path)
    execute.add_argument("--operator", type=int, default=None, help="User id recorded on the import run")
    return p.parse_args(argv)


def _print_preview(summary: PreviewSummary, limit: int = 10) -> None:
    print(
        f"file={summary.file_name} total={summary.total_rows} matched={summary.matched} "
        f"duplicates={summary.duplicates} unmatched={summary.unmatched} "
        f"rejected={summary.rejected_count}"
    )
    for classification in Classification:
        for row in summary.samples[classification][:limit]:
            print(
                f"  {classification.value:<9} row={row.record.row_number} "
                f"ref={row.reference_label} who={row.counterparty_label}"
            )
    for rejection in summary.rejected_samples[:limit]:
        print(f"  rejected  row={rejection.row_number} reason={rejection.reason}")


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    load_dotenv(dotenv_path=Path(".env"), override=True)

    if args.debug:
        for h in logger.handlers:
            h.setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
        logger.debug("debug mode enabled")

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    kind = ImportKind(args.kind)
    try:
        data = args.file.read_bytes()
    except OSError as e:
        logger.error(f"file: {e}")
        return EXIT_FATAL

    try:
        with _db_cursor(cfg) as cur:
            pipeline = build_pipeline(kind, PostgresRepository(cur), cfg)
            if args.command == "preview":
                _print_preview(pipeline.preview(data, args.file.name))
                return EXIT_SUCCESS_ALL
            result = pipeline.execute(data, args.file.name, args.operator)
    except (DecodeError, MissingColumnsError, EmptyInputError) as e:
        logger.error(f"input: {e}")
        return EXIT_FATAL
    except ProcessingError as e:
        logger.error(f"processing: {e}")
        return EXIT_PARTIAL_FAILURE
    except psycopg2.Error as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL

    for message in result.errors:
        logger.warning(message)
    summary_line = render_summary_line(kind, result)
    log_summary(summary_line.removeprefix("SUMMARY "))

    if result.failed > 0 or result.imported == 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
