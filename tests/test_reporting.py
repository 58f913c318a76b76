"""Tests for the daily report aggregation and its Excel export."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import openpyxl
import pytest

from pos_ledger import core_logic, payroll, reporting
from pos_ledger.constants import PaymentMode

from conftest import REPORT_DATE, SALE_MOMENT


@pytest.fixture
def trading_day(seeded_context, staff_member, checkout):
    """One cash and one UPI sale on the report date plus a sale the day after."""

    context = seeded_context
    core_logic.set_opening_balance(context, REPORT_DATE, "1000")
    core_logic.record_sale(context, checkout(context, ("P-BUN", 3)))
    core_logic.record_sale(
        context,
        checkout(context, ("P-MILK", 2), mode=PaymentMode.UPI, customer="Ravi", timestamp=SALE_MOMENT.replace(hour=18)),
    )
    core_logic.record_sale(context, checkout(context, ("P-BUN", 1), timestamp=datetime(2025, 3, 2, 9, 0)))
    core_logic.record_expense(context, date=REPORT_DATE, description="Gas cylinder", amount="100")
    core_logic.record_expense(context, date="2025-03-02", description="Rent", amount="5000")
    payroll.record_salary_payment(context, staff_member.staff_id, 2, 2025, "500", paid_date=REPORT_DATE)
    return context


def test_daily_report_totals(trading_day):
    report = reporting.build_daily_report(trading_day, REPORT_DATE)

    assert report.total_sales == Decimal("300")
    assert report.cash_sales == Decimal("240")
    assert report.upi_sales == Decimal("60")
    assert report.transaction_count == 2
    assert report.opening_balance == Decimal("1000")


def test_daily_report_profit_and_expenses(trading_day):
    report = reporting.build_daily_report(trading_day, REPORT_DATE)

    # bun (80 - 50) * 3 + milk (30 - 20) * 2
    assert report.gross_profit == Decimal("110")
    assert report.salary_expense == Decimal("500")
    assert report.other_expenses == Decimal("100")
    assert report.total_expenses == Decimal("600")
    assert report.net_profit == Decimal("-490")


def test_cash_in_hand_ignores_expenses(trading_day):
    report = reporting.build_daily_report(trading_day, REPORT_DATE)

    assert report.cash_in_hand == Decimal("1240")


def test_gross_profit_follows_live_catalog_prices(trading_day):
    core_logic.update_product(trading_day, "P-BUN", purchase_price="70")

    report = reporting.build_daily_report(trading_day, REPORT_DATE)

    assert report.gross_profit == Decimal("50")
    assert report.total_sales == Decimal("300")


def test_deleted_products_contribute_no_profit(trading_day):
    core_logic.delete_product(trading_day, "P-MILK")

    report = reporting.build_daily_report(trading_day, REPORT_DATE)

    assert report.gross_profit == Decimal("90")


def test_search_filters_listed_transactions_only(trading_day):
    report = reporting.build_daily_report(trading_day, REPORT_DATE, search="RAVI")

    assert [sale.customer for sale in report.sales] == ["Ravi"]
    assert report.cash_transactions == ()
    assert len(report.upi_transactions) == 1
    assert report.total_sales == Decimal("300")
    assert report.transaction_count == 2


def test_search_matches_bill_number(trading_day):
    report = reporting.build_daily_report(trading_day, REPORT_DATE, search="2")

    assert [sale.bill_no for sale in report.sales] == [2]


def test_report_is_idempotent(trading_day):
    first = reporting.build_daily_report(trading_day, REPORT_DATE)
    second = reporting.build_daily_report(trading_day, REPORT_DATE)

    assert first == second


def test_report_for_empty_day(runtime_context):
    report = reporting.build_daily_report(runtime_context, "2030-01-01")

    assert report.total_sales == Decimal("0")
    assert report.opening_balance == Decimal("0")
    assert report.stock_movement == ()
    assert report.stock_movement_totals == reporting.StockMovementTotals(0, 0, 0)


def test_report_rejects_bad_date(runtime_context):
    with pytest.raises(core_logic.ValidationError):
        reporting.build_daily_report(runtime_context, "01/03/2025")


def test_stock_movement_lists_purchases_then_sales(seeded_context, checkout):
    core_logic.record_purchase(
        seeded_context,
        core_logic.PurchaseCommand(
            supplier="Acme",
            date=REPORT_DATE,
            items=[core_logic.PurchaseLine("P-MILK", 6, Decimal("18"))],
        ),
    )
    core_logic.record_sale(seeded_context, checkout(seeded_context, ("P-BUN", 3), ("P-MILK", 2)))

    report = reporting.build_daily_report(seeded_context, REPORT_DATE)

    assert [
        (row.product_id, row.stock_in, row.stock_out, row.net, row.current_stock) for row in report.stock_movement
    ] == [
        ("P-MILK", 6, 2, 4, 9),
        ("P-BUN", 0, 3, -3, 7),
    ]
    assert report.stock_movement_totals == reporting.StockMovementTotals(6, 5, 1)
    assert report.total_purchases == Decimal("108")


def test_matches_search_blank_matches_everything(trading_day):
    sale = core_logic.list_sales(trading_day)[0]

    assert reporting.matches_search(sale, None)
    assert reporting.matches_search(sale, "   ")
    assert not reporting.matches_search(sale, "nobody")


def test_export_report_writes_expected_sheets(trading_day, tmp_path):
    target = reporting.export_report(trading_day, REPORT_DATE, tmp_path / "out" / "report.xlsx")

    workbook = openpyxl.load_workbook(target)

    assert workbook.sheetnames == [
        "Summary",
        "Sales Summary",
        "Itemized Sales",
        "Stock Movement",
        "Inventory",
        "Purchases",
        "Expenses",
    ]
    summary = {row[0]: row[1] for row in workbook["Summary"].iter_rows(min_row=2, values_only=True)}
    assert summary["Total Sales"] == 300
    assert summary["Cash In Hand"] == 1240
    assert workbook["Sales Summary"].max_row == 3
    assert workbook["Itemized Sales"].max_row == 3
    last_movement = [cell.value for cell in workbook["Stock Movement"][workbook["Stock Movement"].max_row]]
    assert last_movement[1] == "Total"
    assert workbook["Stock Movement"]["A1"].font.bold
