"""Utility for initializing the POS ledger master workbook.

The module doubles as a script (``pos-setup``) and as a library used by tests
or other tooling. It writes every managed sheet with a bold header row, seeds
the shop settings and the bill counter, and adds the default staff member
named in ``config.ini``.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

import openpyxl
from openpyxl.styles import Font

from . import data_manager
from .constants import DEFAULT_SETTINGS, LAST_BILL_COUNTER, SheetName

CONFIG_FILE = "config.ini"

DEFAULT_STAFF_NAME = "Counter"
DEFAULT_STAFF_ROLE = "Cashier"


def create_master_workbook(
    destination: Path,
    *,
    default_staff_id: str,
    shop_name: Optional[str] = None,
    sheet_columns: Mapping[str, Sequence[str]] = data_manager.SHEET_COLUMNS,
    settings_template: Mapping[str, Any] = DEFAULT_SETTINGS,
    overwrite: bool = False,
) -> Path:
    """Create the POS ledger master workbook at ``destination``.

    Parameters are overridable to facilitate testing. When ``overwrite`` is
    ``False`` (the default) this function raises ``FileExistsError`` if the
    target already exists.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing master workbook: {destination}")

    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()

    # openpyxl always starts with a default "Sheet".
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)
    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    settings = dict(settings_template)
    if shop_name:
        settings["shopName"] = shop_name
    data_manager.replace_collection(workbook, SheetName.SETTINGS.value, settings)
    data_manager.replace_collection(workbook, SheetName.COUNTERS.value, {LAST_BILL_COUNTER: 0})
    data_manager.replace_collection(
        workbook,
        SheetName.STAFF.value,
        [
            data_manager.StaffRow(
                staff_id=default_staff_id,
                name=DEFAULT_STAFF_NAME,
                role=DEFAULT_STAFF_ROLE,
                salary=data_manager.to_decimal(0),
                employed=True,
            )
        ],
    )
    data_manager.save_workbook(workbook, destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the workbook named by ``config_path`` using its defaults."""

    config_path = Path(config_path).expanduser().resolve()
    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    return create_master_workbook(
        settings.data_file,
        default_staff_id=settings.default_staff_id,
        shop_name=settings.shop_name,
        overwrite=overwrite,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(prog="pos-setup", description="Initialize the POS ledger data file")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the ``pos-setup`` script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- POS Ledger Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (FileNotFoundError, KeyError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except OSError as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created master workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
