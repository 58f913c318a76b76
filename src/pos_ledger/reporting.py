"""Daily financial and stock-movement reporting.

Reports are pure reads: they combine sales, purchases, expenses, salary
payments, and the daily opening balance for a single calendar date and never
mutate the ledger. Building the same report twice without an intervening
commit yields identical figures.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import openpyxl
from openpyxl.styles import Font

from . import data_manager, log
from .constants import PaymentMode
from .core_logic import (
    RuntimeContext,
    _products_by_id,
    get_daily_log,
    list_expenses,
    list_purchases,
    list_sales,
    normalize_date,
)
from .payroll import list_staff


_ZERO = Decimal("0")


@dataclass(frozen=True)
class StockMovement:
    """Units received and sold for one product on the report date.

    ``current_stock`` is the live catalog level, not a historical
    reconstruction; products since deleted from the catalog report zero.
    """

    product_id: str
    name: str
    stock_in: int
    stock_out: int
    net: int
    current_stock: int


@dataclass(frozen=True)
class StockMovementTotals:
    stock_in: int
    stock_out: int
    net: int


@dataclass(frozen=True)
class DailyReport:
    """Aggregated figures for a single date.

    Totals always cover the whole day. Only ``sales`` and the per-mode
    transaction lists honour the optional search filter.
    """

    report_date: str
    opening_balance: Decimal
    total_sales: Decimal
    cash_sales: Decimal
    upi_sales: Decimal
    gross_profit: Decimal
    salary_expense: Decimal
    other_expenses: Decimal
    total_expenses: Decimal
    net_profit: Decimal
    cash_in_hand: Decimal
    transaction_count: int
    total_purchases: Decimal
    sales: Tuple[data_manager.SaleRow, ...]
    cash_transactions: Tuple[data_manager.SaleRow, ...]
    upi_transactions: Tuple[data_manager.SaleRow, ...]
    expenses: Tuple[data_manager.ExpenseRow, ...]
    purchases: Tuple[data_manager.PurchaseRow, ...]
    stock_movement: Tuple[StockMovement, ...]
    stock_movement_totals: StockMovementTotals
    search: Optional[str] = None


def sales_on(sales: Iterable[data_manager.SaleRow], report_date: str) -> List[data_manager.SaleRow]:
    """Select sales whose timestamp falls on ``report_date`` (local calendar day)."""

    return [sale for sale in sales if sale.timestamp_iso.startswith(report_date)]


def matches_search(sale: data_manager.SaleRow, search: Optional[str]) -> bool:
    """Case-insensitive match on bill number substring or customer name."""

    if not search or not search.strip():
        return True
    needle = search.strip().lower()
    return needle in str(sale.bill_no) or needle in (sale.customer or "").lower()


def gross_profit(
    sales: Iterable[data_manager.SaleRow],
    catalog: Dict[str, data_manager.ProductRow],
) -> Decimal:
    """Sum ``(sales price - purchase price) * qty`` using live catalog prices.

    The sale's own price snapshot is ignored, so editing a product's prices
    changes the profit reported for past days. Items whose product is no longer
    in the catalog contribute nothing.
    """

    profit = _ZERO
    for sale in sales:
        for item in sale.items:
            product = catalog.get(item.product_id)
            if product is None:
                continue
            profit += (product.sales_price - product.purchase_price) * item.qty
    return profit


def salary_expense_on(staff: Iterable[data_manager.StaffRow], report_date: str) -> Decimal:
    total = _ZERO
    for member in staff:
        for payment in member.salary_payments:
            if payment.paid and payment.paid_date and payment.paid_date[:10] == report_date:
                total += payment.amount
    return total


def stock_movement(
    purchases: Sequence[data_manager.PurchaseRow],
    sales: Sequence[data_manager.SaleRow],
    catalog: Dict[str, data_manager.ProductRow],
) -> Tuple[Tuple[StockMovement, ...], StockMovementTotals]:
    """Tabulate per-product stock in and out for the supplied day's records.

    Rows appear in first-touched order: purchased products first, then sold
    ones.
    """

    names: Dict[str, str] = {}
    received: Dict[str, int] = {}
    sold: Dict[str, int] = {}
    for purchase in purchases:
        for item in purchase.items:
            names.setdefault(item.product_id, item.product_name)
            received[item.product_id] = received.get(item.product_id, 0) + item.quantity
    for sale in sales:
        for item in sale.items:
            names.setdefault(item.product_id, item.name)
            sold[item.product_id] = sold.get(item.product_id, 0) + item.qty

    rows = []
    for product_id, name in names.items():
        stock_in = received.get(product_id, 0)
        stock_out = sold.get(product_id, 0)
        product = catalog.get(product_id)
        rows.append(
            StockMovement(
                product_id=product_id,
                name=product.name if product else name,
                stock_in=stock_in,
                stock_out=stock_out,
                net=stock_in - stock_out,
                current_stock=product.stock if product else 0,
            )
        )
    total_in = sum(row.stock_in for row in rows)
    total_out = sum(row.stock_out for row in rows)
    return tuple(rows), StockMovementTotals(stock_in=total_in, stock_out=total_out, net=total_in - total_out)


def build_daily_report(
    context: RuntimeContext,
    report_date: Union[str, date],
    search: Optional[str] = None,
) -> DailyReport:
    """Aggregate the ledger into a :class:`DailyReport` for ``report_date``.

    Sales are matched by the calendar-day prefix of their timestamp while
    expenses and purchases are matched by exact date. Salary expense counts
    paid salary records whose paid date is the report date. Cash in hand is
    the opening balance plus cash sales; expenses are not deducted from it.

    Args:
        context (RuntimeContext): Runtime context providing workbook access.
        report_date (str | date): Calendar date to report on.
        search (str | None): Optional filter on bill number or customer name
            applied to the listed transactions only.

    Returns:
        DailyReport: Totals, transaction lists, and the stock movement table.

    Raises:
        ValidationError: If ``report_date`` is not a valid date.
    """

    day = normalize_date(report_date, field_name="report_date")
    catalog = _products_by_id(context)

    day_sales = sales_on(list_sales(context), day)
    total_sales = sum((sale.total for sale in day_sales), _ZERO)
    cash_sales = sum((sale.total for sale in day_sales if sale.mode is PaymentMode.CASH), _ZERO)
    upi_sales = sum((sale.total for sale in day_sales if sale.mode is PaymentMode.UPI), _ZERO)

    day_expenses = [expense for expense in list_expenses(context) if expense.date == day]
    other_expenses = sum((expense.amount for expense in day_expenses), _ZERO)
    salary_expense = salary_expense_on(list_staff(context), day)
    total_expenses = salary_expense + other_expenses

    profit = gross_profit(day_sales, catalog)
    daily_log = get_daily_log(context, day)
    opening_balance = daily_log.opening_balance if daily_log else _ZERO

    day_purchases = [purchase for purchase in list_purchases(context) if purchase.date == day]
    movement, movement_totals = stock_movement(day_purchases, day_sales, catalog)

    shown = tuple(sale for sale in day_sales if matches_search(sale, search))
    report = DailyReport(
        report_date=day,
        opening_balance=opening_balance,
        total_sales=total_sales,
        cash_sales=cash_sales,
        upi_sales=upi_sales,
        gross_profit=profit,
        salary_expense=salary_expense,
        other_expenses=other_expenses,
        total_expenses=total_expenses,
        net_profit=profit - total_expenses,
        cash_in_hand=opening_balance + cash_sales,
        transaction_count=len(day_sales),
        total_purchases=sum((purchase.total_amount for purchase in day_purchases), _ZERO),
        sales=shown,
        cash_transactions=tuple(sale for sale in shown if sale.mode is PaymentMode.CASH),
        upi_transactions=tuple(sale for sale in shown if sale.mode is PaymentMode.UPI),
        expenses=tuple(day_expenses),
        purchases=tuple(day_purchases),
        stock_movement=movement,
        stock_movement_totals=movement_totals,
        search=search,
    )
    log.debug("Built daily report for %s (%d sales)", day, report.transaction_count)
    return report


def _mode_label(mode: PaymentMode) -> str:
    return "UPI" if mode is PaymentMode.UPI else "Cash"


def _append_table(workbook, title: str, headers: Sequence[str], rows: Iterable[Sequence[object]]) -> None:
    sheet = workbook.create_sheet(title=title)
    sheet.append(list(headers))
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for row in rows:
        sheet.append(list(row))


def export_report(
    context: RuntimeContext,
    report_date: Union[str, date],
    destination: Path,
) -> Path:
    """Write the daily report as a multi-sheet Excel workbook.

    The workbook holds a Summary, the day's sales (one row per bill and one
    row per item), the stock movement table, the live inventory valued at
    purchase price, and the day's purchases and expenses.

    Args:
        context (RuntimeContext): Runtime context providing workbook access.
        report_date (str | date): Calendar date to report on.
        destination (Path): Target ``.xlsx`` path. Parent directories are
            created as needed.

    Returns:
        Path: The resolved path of the written workbook.
    """

    report = build_daily_report(context, report_date)
    settings_name = context.settings.shop_name

    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)

    _append_table(
        workbook,
        "Summary",
        ["Metric", "Value"],
        [
            ("Shop", settings_name),
            ("Report Date", report.report_date),
            ("Opening Balance", report.opening_balance),
            ("Total Sales", report.total_sales),
            ("Cash Sales", report.cash_sales),
            ("UPI Sales", report.upi_sales),
            ("Total Transactions", report.transaction_count),
            ("Gross Profit", report.gross_profit),
            ("Salary Expense", report.salary_expense),
            ("Other Expenses", report.other_expenses),
            ("Total Expenses", report.total_expenses),
            ("Net Profit", report.net_profit),
            ("Cash In Hand", report.cash_in_hand),
            ("Total Purchases", report.total_purchases),
        ],
    )
    _append_table(
        workbook,
        "Sales Summary",
        ["Bill No", "Timestamp", "Customer", "Payment Mode", "Total Amount", "Items"],
        [
            (
                sale.bill_no,
                sale.timestamp_iso,
                sale.customer,
                _mode_label(sale.mode),
                sale.total,
                data_manager.summarize_sale_items(sale.items),
            )
            for sale in report.sales
        ],
    )
    catalog = _products_by_id(context)
    _append_table(
        workbook,
        "Itemized Sales",
        ["Bill No", "Date", "Customer", "Item Name", "Category", "Qty", "Unit Price", "Item Total", "Payment Mode"],
        [
            (
                sale.bill_no,
                sale.timestamp_iso[:10],
                sale.customer,
                item.name,
                catalog[item.product_id].category if item.product_id in catalog else "N/A",
                item.qty,
                item.price,
                item.price * item.qty,
                _mode_label(sale.mode),
            )
            for sale in report.sales
            for item in sale.items
        ],
    )
    _append_table(
        workbook,
        "Stock Movement",
        ["Product ID", "Product Name", "Stock In", "Stock Out", "Net", "Current Stock"],
        [
            (row.product_id, row.name, row.stock_in, row.stock_out, row.net, row.current_stock)
            for row in report.stock_movement
        ]
        + [
            (
                "",
                "Total",
                report.stock_movement_totals.stock_in,
                report.stock_movement_totals.stock_out,
                report.stock_movement_totals.net,
                "",
            )
        ],
    )
    _append_table(
        workbook,
        "Inventory",
        ["Product Name", "Category", "Stock", "Unit", "Purchase Price", "Sales Price", "Stock Value (Purchase)"],
        [
            (
                product.name,
                product.category,
                product.stock,
                product.unit,
                product.purchase_price,
                product.sales_price,
                product.purchase_price * product.stock,
            )
            for product in catalog.values()
        ],
    )
    _append_table(
        workbook,
        "Purchases",
        ["Date", "Supplier", "Total Amount", "Items", "Notes"],
        [
            (
                purchase.date,
                purchase.supplier,
                purchase.total_amount,
                "; ".join(
                    f"{item.product_name} ({item.quantity} @ {item.purchase_price})" for item in purchase.items
                ),
                purchase.notes,
            )
            for purchase in report.purchases
        ],
    )
    _append_table(
        workbook,
        "Expenses",
        ["Date", "Category", "Description", "Amount"],
        [(expense.date, expense.category, expense.description, expense.amount) for expense in report.expenses],
    )

    target = Path(destination).expanduser().resolve()
    data_manager.save_workbook(workbook, target)
    log.info("Exported daily report for %s to '%s'", report.report_date, target)
    return target
