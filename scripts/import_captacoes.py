"""
Import a captações workbook from the command line.

Runs the same pipeline as the upload API with the proposed column mapping:
parse, map, validate, check duplicates, then commit in batches.

Usage:
    python scripts/import_captacoes.py data/uploads/captacoes_marco.xlsx

    # Show mapping and pre-commit summary only
    python scripts/import_captacoes.py data/uploads/captacoes_marco.xlsx --dry-run
"""

import argparse
import os
import sys

# Allow imports from the project root when running as a script
_root_dir = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _root_dir)

from dotenv import load_dotenv
load_dotenv(os.path.join(_root_dir, ".env"))

from exceptions import AppError
from services.ingestion_service import IngestionOrchestrator, UploadProgress
from services.row_store_service import get_row_store
from services.upload_history_service import get_upload_history_service


def print_header(title: str) -> None:
    print("=" * 60)
    print(f"  {title}")
    print("=" * 60)


def print_mapping(orchestrator: IngestionOrchestrator) -> None:
    print("\nColumn mapping:")
    for mapping in orchestrator.session.mapping:
        if mapping.is_selected and mapping.target_field is not None:
            print(f"  + {mapping.source_column + ':':<30} {mapping.target_field.label}")
        else:
            print(f"  - {mapping.source_column + ':':<30} (ignored)")

    missing = orchestrator.missing_required_fields()
    if missing:
        print(f"\n  Missing required fields: {', '.join(f.label for f in missing)}")


def print_progress(progress: UploadProgress) -> None:
    print(
        f"  Batch {progress.completed_batches}/{progress.total_batches}"
        f"  ({progress.percent}%)  inserted so far: {progress.inserted_so_far}"
    )


def print_list(title: str, items: list[str], limit: int) -> None:
    if not items:
        return
    print(f"\n{title} ({len(items)}):")
    for item in items[:limit]:
        print(f"  {item}")
    if len(items) > limit:
        print(f"  ... and {len(items) - limit} more")


def run_import(path: str, dry_run: bool = False, limit: int = 20) -> bool:
    """Run the pipeline on one file. Returns True when the upload completed."""
    with open(path, "rb") as f:
        content = f.read()

    orchestrator = IngestionOrchestrator(
        store=get_row_store(),
        history=get_upload_history_service(),
    )

    print_header(f"CAPTAÇÕES IMPORT -- {os.path.basename(path)}")

    session = orchestrator.load_workbook(content, os.path.basename(path))
    print(f"\nColumns: {len(session.columns)}    Data rows: {session.total_rows}")
    if session.previously_uploaded:
        previous = session.previously_uploaded
        print(
            f"WARNING: this file was already uploaded as {previous.get('filename')}"
            f" on {previous.get('uploaded_at')}"
        )

    print_mapping(orchestrator)

    summary = orchestrator.prepare()
    print("\nSummary:")
    print(f"  Total rows:      {summary.total_rows}")
    print(f"  Valid rows:      {summary.valid_rows}")
    print(f"  Invalid rows:    {summary.invalid_rows}")
    print(f"  New rows:        {summary.new_rows}")
    print(f"  Already stored:  {summary.duplicates_count}")
    print_list("Duplicates (sample)", summary.duplicates_sample, limit)
    print_list("Validation errors", summary.errors, limit)

    if dry_run:
        print("\nDry run: nothing was written.")
        orchestrator.cancel()
        return True

    print("\nCommitting:")
    result = orchestrator.commit(on_progress=print_progress)

    print(f"\nResult: {result.status.upper()}")
    print(f"  Inserted:            {result.inserted_count}")
    print(f"  Duplicates ignored:  {result.duplicates_ignored_count}")
    print(f"  Invalid rows:        {result.invalid_row_count}")
    print(f"  Rows in failed batches: {result.failed_row_count}")
    print_list("Errors", result.errors, limit)

    return result.status == "completed"


def main():
    parser = argparse.ArgumentParser(
        description="Import a captações workbook into the store."
    )
    parser.add_argument(
        "file",
        help="Path to the .xlsx/.xls workbook",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate and check duplicates without inserting",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum errors/duplicates to print per list (default: 20)",
    )

    args = parser.parse_args()

    if not os.path.isfile(args.file):
        print(f"ERROR: File not found: {args.file}")
        sys.exit(1)

    try:
        success = run_import(args.file, dry_run=args.dry_run, limit=args.limit)
    except AppError as e:
        print(f"\nERROR [{e.code}]: {e.message}")
        for item in (e.details or {}).get("errors", [])[:args.limit]:
            print(f"  {item}")
        sys.exit(1)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
