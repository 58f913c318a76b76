"""Tests for the master workbook bootstrap script."""

from __future__ import annotations

import openpyxl
import pytest

from pos_ledger import constants, data_manager
from pos_ledger.setup_excel import create_master_workbook, main


def test_create_master_workbook_writes_every_sheet(tmp_path):
    target = create_master_workbook(tmp_path / "master.xlsx", default_staff_id="S-1", shop_name="Corner Bakery")

    workbook = openpyxl.load_workbook(target)

    assert workbook.sheetnames == list(data_manager.SHEET_COLUMNS)
    for name, columns in data_manager.SHEET_COLUMNS.items():
        header = workbook[name][1]
        assert [cell.value for cell in header] == list(columns)
        assert all(cell.font.bold for cell in header)

    settings = data_manager.get_collection(workbook, "Settings")
    assert settings["shopName"] == "Corner Bakery"
    assert data_manager.get_collection(workbook, "Counters") == {constants.LAST_BILL_COUNTER: 0}
    (staff,) = data_manager.get_collection(workbook, "Staff")
    assert staff.staff_id == "S-1"


def test_create_master_workbook_refuses_to_overwrite(master_workbook_path):
    with pytest.raises(FileExistsError):
        create_master_workbook(master_workbook_path, default_staff_id="S-1")


def test_main_creates_workbook_from_config(tmp_path, capsys):
    config_path = tmp_path / "config.ini"
    config_path.write_text(
        "[System]\nDataFile = data/shop.xlsx\nShopName = Shop\nSchemaVersion = 1.0.0\n\n"
        "[Defaults]\nDefaultStaff = S-9\n"
    )

    assert main(["--config", str(config_path)]) == 0
    assert (tmp_path / "data" / "shop.xlsx").exists()
    assert "[SUCCESS]" in capsys.readouterr().out

    assert main(["--config", str(config_path)]) == 1
    assert "--force" in capsys.readouterr().out
    assert main(["--config", str(config_path), "--force"]) == 0
