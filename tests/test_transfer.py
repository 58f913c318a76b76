"""Tests for product import, the import template, and backup/restore."""

from __future__ import annotations

from decimal import Decimal

import openpyxl
import pytest

from pos_ledger import constants, core_logic, data_manager, payroll, transfer


def _write_sheet(path, header, *rows):
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.append(list(header))
    for row in rows:
        sheet.append(list(row))
    workbook.save(path)
    return path


def test_parse_import_row_skips_rows_without_name_or_numbers():
    assert transfer.parse_import_row({"Name": "", "Price": 5}) is None
    assert transfer.parse_import_row({"Name": "Cake"}) is None


def test_parse_import_row_accepts_stock_without_price():
    row = transfer.parse_import_row({"name": "Cake", "Qty": "4"})

    assert row.stock == 4
    assert row.effective_sales_price is None


def test_parse_import_row_rejects_non_numeric_price():
    with pytest.raises(core_logic.ValidationError):
        transfer.parse_import_row({"Name": "Cake", "Price": "cheap"}, line=3)


def test_parse_import_row_rejects_negative_stock():
    with pytest.raises(core_logic.ValidationError, match="Row 4"):
        transfer.parse_import_row({"Name": "Cake", "Price": 20, "Qty": -2}, line=4)


def test_import_products_rejects_negative_stock_atomically(seeded_context):
    rows = [transfer.ImportRow(name="Ghost", stock=3), transfer.ImportRow(name="butter bun", stock=-50)]

    with pytest.raises(core_logic.ValidationError):
        transfer.import_products(seeded_context, rows)

    assert core_logic.get_product(seeded_context, "P-BUN").stock == 10
    assert all(product.name != "Ghost" for product in core_logic.list_products(seeded_context))


def test_read_import_rows_understands_header_aliases(tmp_path):
    source = _write_sheet(
        tmp_path / "import.xlsx",
        ("Product", "Category", "Price", "Cost", "Qty", "Unit"),
        ("Rusk", "Snacks", 20, 12, 10, "pkt"),
        (None, "Snacks", 5, 1, 1, None),
    )

    (row,) = transfer.read_import_rows(source)

    assert row == transfer.ImportRow(
        name="Rusk",
        category="Snacks",
        price=Decimal("20"),
        sales_price=Decimal("20"),
        purchase_price=Decimal("12"),
        stock=10,
        unit="pkt",
    )


def test_read_import_rows_requires_usable_data(tmp_path):
    source = _write_sheet(tmp_path / "empty.xlsx", ("Name", "Notes"), ("Cake", "tasty"))

    with pytest.raises(core_logic.ValidationError):
        transfer.read_import_rows(source)


def test_read_import_rows_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        transfer.read_import_rows(tmp_path / "nope.xlsx")


def test_import_products_upserts_by_name(seeded_context, tmp_path):
    source = _write_sheet(
        tmp_path / "import.xlsx",
        ("Name", "Category", "SalesPrice", "PurchasePrice", "Stock"),
        ("butter BUN", None, 85, None, 4),
        ("Rusk", "Snacks", 20, 12, 10),
    )

    result = transfer.import_products(seeded_context, source)

    assert result == transfer.ImportResult(added=1, updated=1)
    bun = core_logic.get_product(seeded_context, "P-BUN")
    assert (bun.stock, bun.sales_price, bun.purchase_price, bun.category) == (14, Decimal("85"), Decimal("50"), "Breads")
    rusk = next(p for p in core_logic.list_products(seeded_context) if p.name == "Rusk")
    assert rusk.product_id.startswith("_")
    assert (rusk.stock, rusk.unit, rusk.category) == (10, constants.DEFAULT_UNIT, "Snacks")


def test_import_products_new_row_defaults(runtime_context):
    result = transfer.import_products(runtime_context, [transfer.ImportRow(name="Loose Tea", stock=3)])

    (product,) = core_logic.list_products(runtime_context)
    assert result.added == 1
    assert product.category == constants.DEFAULT_CATEGORY
    assert product.sales_price == Decimal("0")


def test_write_product_template_adds_dropdowns(seeded_context, tmp_path):
    target = transfer.write_product_template(seeded_context, tmp_path / "template.xlsx")

    workbook = openpyxl.load_workbook(target)
    template = workbook["Template"]

    assert [cell.value for cell in template[1]] == list(transfer.TEMPLATE_HEADERS)
    ranges = {str(rule.sqref): rule.formula1 for rule in template.data_validations.dataValidation}
    assert ranges["D2:D1000"].startswith("'Valid Options'!$A$2")
    assert ranges["B2:B1000"] == "'Valid Options'!$B$2:$B$3"
    categories = [row[1] for row in workbook["Valid Options"].iter_rows(min_row=2, values_only=True) if row[1]]
    assert categories == ["Breads", "Dairy"]


def test_backup_and_restore_round_trip(seeded_context, staff_member, checkout, tmp_path):
    sale = core_logic.record_sale(seeded_context, checkout(seeded_context, ("P-BUN", 2)))
    core_logic.record_expense(seeded_context, date="2025-03-01", description="Gas", amount="100")
    backup_path = transfer.export_backup(seeded_context, tmp_path / "backup.xlsx")

    backup = openpyxl.load_workbook(backup_path)
    assert backup.sheetnames == list(transfer.BACKUP_SHEETS)

    core_logic.delete_product(seeded_context, "P-MILK")
    core_logic.reverse_sale(seeded_context, sale.sale_id)

    counts = transfer.restore_backup(seeded_context, backup_path)

    assert counts["Products"] == 2
    assert counts["Sales"] == 1
    assert core_logic.get_product(seeded_context, "P-MILK").stock == 5
    assert core_logic.get_product(seeded_context, "P-BUN").stock == 8
    assert core_logic.get_sale(seeded_context, sale.sale_id).bill_no == 1
    assert payroll.get_staff(seeded_context, staff_member.staff_id).salary == Decimal("9000")
    assert len(core_logic.list_expenses(seeded_context)) == 1


def test_restore_never_rewinds_bill_counter(seeded_context, checkout, tmp_path):
    core_logic.record_sale(seeded_context, checkout(seeded_context, ("P-BUN", 1)))
    backup_path = transfer.export_backup(seeded_context, tmp_path / "backup.xlsx")
    core_logic.record_sale(seeded_context, checkout(seeded_context, ("P-BUN", 1)))
    core_logic.record_sale(seeded_context, checkout(seeded_context, ("P-BUN", 1)))

    transfer.restore_backup(seeded_context, backup_path)

    assert core_logic.next_bill_number(seeded_context) == 4


def test_restore_into_fresh_ledger_carries_counter(seeded_context, checkout, config_factory, tmp_path):
    core_logic.record_sale(seeded_context, checkout(seeded_context, ("P-BUN", 1)))
    backup_path = transfer.export_backup(seeded_context, tmp_path / "backup.xlsx")
    fresh = core_logic.load_runtime_context(config_factory().config_path)

    transfer.restore_backup(fresh, backup_path)

    assert core_logic.last_bill_number(fresh) == 1
    assert constants.LAST_BILL_COUNTER in data_manager.get_collection(fresh.workbook, "Counters")
    assert transfer.BACKUP_BILL_KEY not in core_logic.get_settings(fresh)


def test_restore_rejects_backup_without_products(runtime_context, tmp_path):
    backup_path = transfer.export_backup(runtime_context, tmp_path / "backup.xlsx")

    with pytest.raises(core_logic.ValidationError):
        transfer.restore_backup(runtime_context, backup_path)
