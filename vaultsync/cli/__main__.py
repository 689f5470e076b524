from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from vaultsync.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from vaultsync.db.record_source import RecordSourceError, db_cursor
from vaultsync.excel.template import DEFAULT_TEMPLATE_NAME, write_update_template
from vaultsync.logging.error_log import ErrorLogBuffer
from vaultsync.logging.init import log_summary, setup_logging
from vaultsync.models.config_models import MappingVariant, SyncSettings
from vaultsync.models.job import DirectoryJobRegistry
from vaultsync.models.processing_result import BatchSummary, PreviewResult
from vaultsync.services.orchestrator import (
    preview_file,
    preview_job,
    register_file,
    register_job,
    update_file,
    update_record,
    update_row,
)
from vaultsync.services.summary import render_summary_line

"""CLI entrypoint.

Sub-commands:
    register   AddCard every row of a job directory (--job) or a file (--file)
    update     UpdateCard a whole file with truncation retry, or one row
               (--index / --card) with optional field overrides (--set)
    update-db  UpdateCard one card read from the card database
    preview    map rows and check photos without calling Vault
    template   write the update workbook template (headers + one sample row)

Exit codes: 0 every row succeeded, 2 some rows failed, 1 fatal (config,
missing input, bad index, database unavailable).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; .env values win over the inherited environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_set_pairs(pairs: list[str] | None) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"--set expects FIELD=VALUE, got '{pair}'")
        values[key.strip()] = value
    return values


def _load_overrides(path: str | None) -> list[dict[str, Any]] | None:
    if not path:
        return None
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError("overrides file must contain a JSON list")
    return data


def _single_override(args: argparse.Namespace) -> dict[str, Any] | None:
    override = _parse_set_pairs(args.set)
    if args.card_no_override:
        override["cardNo"] = args.card_no_override
    if args.download is not None:
        override["downloadCard"] = args.download
    return override or None


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="vaultsync", description="Spreadsheet -> Vault card profile sync")
    p.add_argument("--config", default=str(DEFAULT_CONFIG_PATH), help="YAML config path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--workers", type=int, default=None, help="Rows processed in parallel (default from config)")
    sub = p.add_subparsers(dest="command", required=True)

    reg = sub.add_parser("register", help="AddCard rows of a job or file")
    src = reg.add_mutually_exclusive_group(required=True)
    src.add_argument("--job", help="Job id (directory under sources.jobs_root)")
    src.add_argument("--file", help="Spreadsheet path")
    reg.add_argument("--overrides", help="JSON file with [{index, cardNo, downloadCard, ...}]")

    upd = sub.add_parser("update", help="UpdateCard rows of a file")
    upd.add_argument("--file", required=True, help="Spreadsheet path")
    target = upd.add_mutually_exclusive_group()
    target.add_argument("--index", type=int, help="Update only this zero-based row")
    target.add_argument("--card", help="Update only the row with this card number")
    upd.add_argument("--overrides", help="JSON file with [{index, cardNo, downloadCard, ...}]")
    upd.add_argument("--no-retry", action="store_true", help="Skip the truncation retry pass")

    db = sub.add_parser("update-db", help="UpdateCard one card read from the card database")
    db.add_argument("--card", required=True, help="Card number")
    db.add_argument("--output-dir", help="Directory for the audit log and photo lookup")

    for single in (upd, db):
        single.add_argument("--set", action="append", metavar="FIELD=VALUE",
                            help="Override a profile field (tag or attribute name); repeatable")
        single.add_argument("--card-no", dest="card_no_override", help="Replacement card number")
        single.add_argument("--download", dest="download", action="store_true", default=None)
        single.add_argument("--no-download", dest="download", action="store_false")

    pre = sub.add_parser("preview", help="Map rows and check photos, no network")
    psrc = pre.add_mutually_exclusive_group(required=True)
    psrc.add_argument("--job", help="Job id")
    psrc.add_argument("--file", help="Spreadsheet path")
    pre.add_argument("--variant", choices=[v.value for v in MappingVariant], default="create")

    tpl = sub.add_parser("template", help="Write a blank update workbook with every supported column")
    tpl.add_argument("--output", default=DEFAULT_TEMPLATE_NAME, help="Workbook path to write")
    return p.parse_args(argv)


def _exit_code(summary: BatchSummary) -> int:
    if summary.success:
        return EXIT_SUCCESS_ALL
    if any(e.is_fatal for e in summary.errors):
        return EXIT_FATAL
    return EXIT_PARTIAL_FAILURE


def _report(summary: BatchSummary, logger: Any) -> int:
    for e in summary.errors[:10]:
        logger.error(f"row={e.row_index} cardNo={e.card_no or '-'} code={e.vendor_code or e.code} "
                     f"message={(e.message or '').strip() or '-'}")
    if len(summary.errors) > 10:
        logger.error(f"... {len(summary.errors) - 10} more error(s)")
    error_log = ErrorLogBuffer()
    error_log.extend(summary.errors)
    try:
        path = error_log.flush()
    except OSError as e:
        logger.warning(f"error log not written: {e}")
    else:
        if path is not None:
            logger.info(f"error log: {path}")
    log_summary(render_summary_line(summary)[len("SUMMARY "):])
    return _exit_code(summary)


def _report_preview(preview: PreviewResult, logger: Any) -> int:
    for e in preview.errors:
        logger.error(f"{e.code}: {e.message}")
    if preview.errors:
        return EXIT_FATAL
    for r in preview.rows:
        logger.info(f"row={r.row_index} cardNo={r.card_no or '-'} staffNo={r.staff_no or '-'} "
                    f"name='{r.name}' photo={'yes' if r.has_photo else 'no'}")
    with_photo = sum(1 for r in preview.rows if r.has_photo)
    log_summary(f"rows={len(preview.rows)} with_photo={with_photo} without_photo={len(preview.rows) - with_photo}")
    return EXIT_SUCCESS_ALL


def _find_card_index(path: Path, card_no: str, settings: SyncSettings) -> int | None:
    preview = preview_file(path, MappingVariant.UPDATE, settings)
    for r in preview.rows:
        if r.card_no == card_no.strip():
            return r.row_index
    return None


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    if args.debug:
        setup_logging(debug=True)
        logger.debug("debug mode enabled")

    if args.command == "template":
        try:
            path = write_update_template(Path(args.output))
        except OSError as e:
            logger.error(f"template: {e}")
            return EXIT_FATAL
        logger.info(f"template written: {path}")
        return EXIT_SUCCESS_ALL

    _load_env_file(Path(".env"), override=True)
    try:
        settings = load_config(Path(args.config))
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL
    if args.workers is not None:
        settings = replace(settings, max_workers=max(args.workers, 1))

    try:
        if args.command == "preview":
            if args.job:
                registry = DirectoryJobRegistry(settings.sources.jobs_root)
                return _report_preview(preview_job(registry, args.job, settings), logger)
            return _report_preview(preview_file(Path(args.file), MappingVariant(args.variant), settings), logger)

        if args.command == "register":
            overrides = _load_overrides(args.overrides)
            if args.job:
                registry = DirectoryJobRegistry(settings.sources.jobs_root)
                summary = register_job(registry, args.job, settings, overrides)
            else:
                summary = register_file(Path(args.file), settings, overrides)
            return _report(summary, logger)

        if args.command == "update":
            path = Path(args.file)
            index = args.index
            if args.card:
                index = _find_card_index(path, args.card, settings)
                if index is None:
                    logger.error(f"card {args.card} not found in {path}")
                    return EXIT_FATAL
            if index is not None:
                return _report(update_row(path, index, settings, _single_override(args)), logger)
            overrides = _load_overrides(args.overrides)
            return _report(update_file(path, settings, overrides, retry=not args.no_retry), logger)

        if args.command == "update-db":
            output_dir = Path(args.output_dir) if args.output_dir else None
            with db_cursor(settings.database) as cur:
                summary = update_record(cur, args.card, settings, _single_override(args), output_dir)
            return _report(summary, logger)
    except RecordSourceError as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL
    except (ValueError, OSError) as e:
        logger.error(f"input: {e}")
        return EXIT_FATAL

    logger.error(f"unknown command: {args.command}")
    return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
