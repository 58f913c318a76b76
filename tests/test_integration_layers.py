"""Integration tests exercising the CLI, business logic, and data layers together."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest

from pos_ledger import cli, constants, core_logic, data_manager, payroll, reporting

from conftest import REPORT_DATE, SALE_MOMENT


def _reload(context: core_logic.RuntimeContext) -> core_logic.RuntimeContext:
    """Simulate a restart: a new context read straight from disk."""

    return core_logic.refresh_context(context)


def test_sale_lifecycle_survives_restart(seeded_context, checkout):
    """A sale, its reversal, and the bill counter are all durable."""

    sale = core_logic.record_sale(seeded_context, checkout(seeded_context, ("P-BUN", 4), ("P-MILK", 1)))
    restarted = _reload(seeded_context)

    assert core_logic.get_sale(restarted, sale.sale_id).total == Decimal("350")
    assert core_logic.get_product(restarted, "P-BUN").stock == 6

    core_logic.reverse_sale(restarted, sale.sale_id)
    restarted = _reload(restarted)

    assert core_logic.list_sales(restarted) == []
    assert core_logic.get_product(restarted, "P-BUN").stock == 10
    assert core_logic.get_product(restarted, "P-MILK").stock == 5
    assert core_logic.next_bill_number(restarted) == 2


def test_purchase_then_sale_then_report(seeded_context, checkout):
    core_logic.set_opening_balance(seeded_context, REPORT_DATE, "500")
    core_logic.record_purchase(
        seeded_context,
        core_logic.PurchaseCommand(
            supplier="Acme Dairy",
            date=REPORT_DATE,
            items=[core_logic.PurchaseLine("P-MILK", 10, Decimal("22"))],
            timestamp=SALE_MOMENT,
        ),
    )
    core_logic.record_sale(seeded_context, checkout(seeded_context, ("P-MILK", 12)))
    core_logic.record_sale(
        seeded_context,
        checkout(seeded_context, ("P-BUN", 1), mode=constants.PaymentMode.UPI, timestamp=SALE_MOMENT.replace(hour=20)),
    )

    report = reporting.build_daily_report(_reload(seeded_context), REPORT_DATE)

    assert report.total_sales == Decimal("440")
    assert report.cash_sales == Decimal("360")
    assert report.upi_sales == Decimal("80")
    # milk (30 - 22) * 12 at the cost set by the purchase, bun (80 - 50) * 1
    assert report.gross_profit == Decimal("126")
    assert report.cash_in_hand == Decimal("860")
    assert report.total_purchases == Decimal("220")
    milk = next(row for row in report.stock_movement if row.product_id == "P-MILK")
    assert (milk.stock_in, milk.stock_out, milk.current_stock) == (10, 12, 3)


def test_edit_cycle_keeps_bill_and_restores_stock(seeded_context, checkout):
    first = core_logic.record_sale(seeded_context, checkout(seeded_context, ("P-BUN", 2)))
    second = core_logic.record_sale(seeded_context, checkout(seeded_context, ("P-MILK", 1)))

    draft = core_logic.begin_sale_edit(seeded_context, first.sale_id)
    edited_cart = [*draft.cart, core_logic.CartLine.from_product(core_logic.get_product(seeded_context, "P-MILK"), 2)]
    edited = core_logic.record_sale(
        seeded_context,
        core_logic.CheckoutCommand(
            cart=edited_cart,
            mode=draft.mode,
            customer=draft.customer,
            gst_rate_percent=Decimal("0"),
            preserved_bill_no=draft.preserved_bill_no,
            timestamp=SALE_MOMENT,
        ),
    )

    restarted = _reload(seeded_context)
    assert sorted(sale.bill_no for sale in core_logic.list_sales(restarted)) == [first.bill_no, second.bill_no]
    assert edited.bill_no == first.bill_no
    assert core_logic.get_product(restarted, "P-BUN").stock == 8
    assert core_logic.get_product(restarted, "P-MILK").stock == 2
    assert core_logic.next_bill_number(restarted) == 3


def test_failed_checkout_leaves_disk_untouched(seeded_context, checkout, monkeypatch):
    before = seeded_context.settings.data_file.read_bytes()

    def _locked(workbook, destination):
        raise PermissionError("locked by another program")

    monkeypatch.setattr(data_manager, "save_workbook", _locked)
    with pytest.raises(core_logic.PersistenceError):
        core_logic.record_sale(seeded_context, checkout(seeded_context, ("P-BUN", 1)))
    monkeypatch.undo()

    assert seeded_context.settings.data_file.read_bytes() == before
    restarted = _reload(seeded_context)
    assert core_logic.list_sales(restarted) == []
    assert core_logic.get_product(restarted, "P-BUN").stock == 10


def test_payroll_feeds_daily_report(runtime_context, staff_member):
    for day in range(1, 31):
        status = constants.AttendanceStatus.PRESENT if day <= 15 else constants.AttendanceStatus.ABSENT
        payroll.record_attendance(runtime_context, staff_member.staff_id, f"2025-04-{day:02d}", status)

    member = payroll.get_staff(_reload(runtime_context), staff_member.staff_id)
    payable = payroll.payable_salary(member, 4, 2025)
    payroll.record_salary_payment(runtime_context, member.staff_id, 4, 2025, payable.amount, paid_date="2025-05-01")

    report = reporting.build_daily_report(runtime_context, "2025-05-01")

    assert payable.amount == Decimal("4500")
    assert report.salary_expense == Decimal("4500")
    assert report.net_profit == Decimal("-4500")


def test_cli_commands_share_one_ledger(config_file, capsys):
    config = ["--config", str(config_file)]
    today = datetime.now().date().isoformat()

    assert cli.main(config + [
        "add-product", "--product-id", "P-TEA", "--name", "Tea", "--category", "Drinks",
        "--purchase-price", "5", "--sales-price", "10", "--stock", "3",
    ]) == 0
    assert cli.main(config + ["purchase", "--supplier", "Acme", "--item", "P-TEA:7:6"]) == 0
    assert cli.main(config + ["checkout", "--item", "P-TEA:10", "--mode", "upi"]) == 0
    assert cli.main(config + ["checkout", "--item", "P-TEA:1", "--mode", "cash"]) == 2
    assert cli.main(config + ["expense", "--description", "Milk delivery", "--amount", "40"]) == 0
    capsys.readouterr()

    context = core_logic.load_runtime_context(config_file)
    report = reporting.build_daily_report(context, today)

    assert core_logic.get_product(context, "P-TEA").stock == 0
    assert report.upi_sales == Decimal("100")
    assert report.other_expenses == Decimal("40")
    assert report.gross_profit == Decimal("40")
