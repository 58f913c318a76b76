"""Command-line entry points for the POS ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the command objects consumed by the business
layer, and printing results. Every mutating command persists through its own
ledger transaction, so there is no trailing save step here.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence, Tuple

from . import core_logic, data_manager, log, payroll, reporting, transfer
from .constants import AttendanceStatus, FinancialRecordType, PaymentMode, StockStatus


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


# ---------------------------------------------------------------------------
# Argument types
# ---------------------------------------------------------------------------


def money(value: str) -> Decimal:
    """argparse type accepting plain decimal amounts such as ``12.50``."""
    try:
        amount = Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"not a valid amount: {value!r}") from exc
    if not amount.is_finite():
        raise argparse.ArgumentTypeError(f"not a valid amount: {value!r}")
    return amount


def cart_item(value: str) -> Tuple[str, int]:
    """Parse ``PRODUCT_ID:QTY``."""
    product_id, sep, qty = value.rpartition(":")
    if not sep or not product_id:
        raise argparse.ArgumentTypeError(f"expected PRODUCT_ID:QTY, got {value!r}")
    try:
        return product_id, int(qty)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"quantity must be a whole number: {value!r}") from exc


def purchase_item(value: str) -> Tuple[str, int, Decimal]:
    """Parse ``PRODUCT_ID:QTY:PRICE``."""
    parts = value.rsplit(":", 2)
    if len(parts) != 3 or not parts[0]:
        raise argparse.ArgumentTypeError(f"expected PRODUCT_ID:QTY:PRICE, got {value!r}")
    product_id, qty, price = parts
    try:
        quantity = int(qty)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"quantity must be a whole number: {value!r}") from exc
    return product_id, quantity, money(price)


# ---------------------------------------------------------------------------
# Parser construction
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="pos-cli",
        description="Command-line tools for the POS ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to searching upward from the working directory).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as checkout and purchases."""
    specs = {
        "add-product": register_add_product_command(subparsers),
        "import-products": register_import_products_command(subparsers),
        "checkout": register_checkout_command(subparsers),
        "delete-sale": register_delete_sale_command(subparsers),
        "edit-sale": register_edit_sale_command(subparsers),
        "purchase": register_purchase_command(subparsers),
        "expense": register_expense_command(subparsers),
        "opening-balance": register_opening_balance_command(subparsers),
        "add-staff": register_add_staff_command(subparsers),
        "attendance": register_attendance_command(subparsers),
        "pay-salary": register_pay_salary_command(subparsers),
        "staff-finance": register_staff_finance_command(subparsers),
        "restore": register_restore_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports and exports."""
    specs = {
        "stock": register_stock_command(subparsers),
        "report": register_report_command(subparsers),
        "salary": register_salary_command(subparsers),
        "export-report": register_export_report_command(subparsers),
        "backup": register_backup_command(subparsers),
        "template": register_template_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Add a product to the catalog."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--category", required=True)
        parser.add_argument("--purchase-price", type=money, required=True)
        parser.add_argument("--sales-price", type=money, required=True)
        parser.add_argument("--stock", type=int, default=0, help="Initial stock (default: 0).")
        parser.add_argument("--unit", default=None)
        parser.add_argument("--product-id", default=None, help="Explicit id; generated when omitted.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_product)


def register_import_products_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``import-products``."""
    name = "import-products"
    help_text = "Upsert products from an .xlsx sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--input", type=Path, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_import_products)


def _add_cart_arguments(parser: argparse.ArgumentParser, *, mode_required: bool) -> None:
    parser.add_argument(
        "--item",
        dest="items",
        type=cart_item,
        action="append",
        required=True,
        metavar="PRODUCT_ID:QTY",
        help="Cart line; repeat for several products.",
    )
    parser.add_argument(
        "--mode",
        choices=[member.value for member in PaymentMode],
        required=mode_required,
        default=None,
    )
    parser.add_argument("--customer", default=None)
    parser.add_argument("--gst", type=money, default=None, help="GST percent; defaults to the shop setting.")
    parser.add_argument("--staff-id", default=None)


def register_checkout_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``checkout``."""
    name = "checkout"
    help_text = "Commit a cart as a sale and decrement stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_cart_arguments(parser, mode_required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_checkout)


def register_delete_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-sale``."""
    name = "delete-sale"
    help_text = "Delete a sale and restore its stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_sale)


def register_edit_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``edit-sale``."""
    name = "edit-sale"
    help_text = "Replace a sale's cart while keeping its bill number."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        _add_cart_arguments(parser, mode_required=False)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_edit_sale)


def register_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``purchase``."""
    name = "purchase"
    help_text = "Record goods received from a supplier."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--supplier", required=True)
        parser.add_argument("--date", default=None, help="YYYY-MM-DD (default: today).")
        parser.add_argument(
            "--item",
            dest="items",
            type=purchase_item,
            action="append",
            required=True,
            metavar="PRODUCT_ID:QTY:PRICE",
        )
        parser.add_argument("--notes", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_purchase)


def register_expense_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``expense``."""
    name = "expense"
    help_text = "Record an operating expense."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", default=None, help="YYYY-MM-DD (default: today).")
        parser.add_argument("--description", required=True)
        parser.add_argument("--amount", type=money, required=True)
        parser.add_argument("--category", default="Other")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_expense)


def register_opening_balance_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``opening-balance``."""
    name = "opening-balance"
    help_text = "Set the opening cash balance for a day."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", default=None, help="YYYY-MM-DD (default: today).")
        parser.add_argument("--amount", type=money, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_opening_balance)


def register_add_staff_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-staff``."""
    name = "add-staff"
    help_text = "Add a staff member."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--role", default="")
        parser.add_argument("--salary", type=money, default=Decimal("0"))
        parser.add_argument("--staff-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_staff)


def register_attendance_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``attendance``."""
    name = "attendance"
    help_text = "Record a staff member's attendance for a day."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--staff-id", required=True)
        parser.add_argument("--date", default=None, help="YYYY-MM-DD (default: today).")
        parser.add_argument("--status", choices=[member.value for member in AttendanceStatus], required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_attendance)


def register_pay_salary_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``pay-salary``."""
    name = "pay-salary"
    help_text = "Mark a month's salary as paid."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--staff-id", required=True)
        parser.add_argument("--month", type=int, required=True)
        parser.add_argument("--year", type=int, required=True)
        parser.add_argument(
            "--amount",
            type=money,
            default=None,
            help="Amount paid (default: the computed payable salary).",
        )
        parser.add_argument("--paid-date", default=None, help="YYYY-MM-DD (default: today).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_pay_salary)


def register_staff_finance_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``staff-finance``."""
    name = "staff-finance"
    help_text = "Record a bonus, advance, or return for a staff member."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--staff-id", required=True)
        parser.add_argument("--type", dest="record_type", choices=[member.value for member in FinancialRecordType], required=True)
        parser.add_argument("--amount", type=money, required=True)
        parser.add_argument("--date", default=None, help="YYYY-MM-DD (default: today).")
        parser.add_argument("--notes", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_staff_finance)


def register_restore_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``restore``."""
    name = "restore"
    help_text = "Replace all data with the contents of a backup workbook."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--input", type=Path, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_restore)


def register_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stock``."""
    name = "stock"
    help_text = "Display current stock levels."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--status", choices=[member.value for member in StockStatus], default=None)
        parser.add_argument("--threshold", type=int, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_stock_report)


def register_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``report``."""
    name = "report"
    help_text = "Display the daily financial and stock movement report."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", default=None, help="YYYY-MM-DD (default: today).")
        parser.add_argument("--search", default=None, help="Filter listed bills by number or customer.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_daily_report)


def register_salary_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``salary``."""
    name = "salary"
    help_text = "Display payable salary and payment status for a month."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--staff-id", default=None, help="Limit to one staff member.")
        parser.add_argument("--month", type=int, default=None)
        parser.add_argument("--year", type=int, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_salary_report)


def register_export_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export-report``."""
    name = "export-report"
    help_text = "Write the daily report to an .xlsx file."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", default=None, help="YYYY-MM-DD (default: today).")
        parser.add_argument("--output", type=Path, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_export_report)


def register_backup_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``backup``."""
    name = "backup"
    help_text = "Write a full backup workbook."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--output", type=Path, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_backup)


def register_template_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``template``."""
    name = "template"
    help_text = "Write a blank product import template."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--output", type=Path, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_template)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations and check its schema."""
    context = core_logic.load_runtime_context(config_path)
    core_logic.ensure_schema_version(context)
    return context


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def _day(value: Optional[str]) -> str:
    return value if value else date.today().isoformat()


def translate_cart(
    context: core_logic.RuntimeContext,
    items: Sequence[Tuple[str, int]],
) -> List[core_logic.CartLine]:
    """Build cart lines at the catalog's current sales prices."""
    return [
        core_logic.CartLine.from_product(core_logic.get_product(context, product_id), qty)
        for product_id, qty in items
    ]


def translate_edit_cart(
    context: core_logic.RuntimeContext,
    sale: data_manager.SaleRow,
    items: Sequence[Tuple[str, int]],
) -> List[core_logic.CartLine]:
    """Build the replacement cart for ``sale``.

    Products already on the bill keep their checkout-time snapshot price; only
    products added during the edit are priced from the catalog.
    """
    billed = {item.product_id: item for item in sale.items}
    cart = []
    for product_id, qty in items:
        item = billed.get(product_id)
        if item is None:
            cart.append(core_logic.CartLine.from_product(core_logic.get_product(context, product_id), qty))
        else:
            cart.append(core_logic.CartLine(item.product_id, item.name, item.unit, item.price, qty))
    return cart


def translate_checkout(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.CheckoutCommand:
    """Translate CLI args into a checkout command object."""
    return core_logic.CheckoutCommand(
        cart=translate_cart(context, args.items),
        mode=PaymentMode(args.mode),
        customer=args.customer,
        gst_rate_percent=args.gst,
        staff_id=args.staff_id,
    )


def translate_purchase(args: argparse.Namespace) -> core_logic.PurchaseCommand:
    """Translate CLI args into a purchase command object."""
    return core_logic.PurchaseCommand(
        supplier=args.supplier,
        date=_day(args.date),
        items=[
            core_logic.PurchaseLine(product_id=product_id, quantity=qty, purchase_price=price)
            for product_id, qty, price in args.items
        ],
        notes=args.notes,
    )


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-product workflow in the BLL."""
    product = core_logic.add_product(
        context,
        name=args.name,
        category=args.category,
        purchase_price=args.purchase_price,
        sales_price=args.sales_price,
        initial_stock=args.stock,
        unit=args.unit,
        product_id=args.product_id,
    )
    print(f"Added product {product.product_id}: {product.name} (stock {product.stock})")
    return 0


def run_import_products(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the product import workflow."""
    result = transfer.import_products(context, args.input)
    print(f"Import complete. Added: {result.added}, Updated: {result.updated}")
    return 0


def _print_sale(sale) -> None:
    print(f"Bill #{sale.bill_no} ({sale.sale_id}) {sale.timestamp_iso}")
    for item in sale.items:
        print(f"  {item.name:<30} {item.qty:>4} x {item.price:>10} = {item.price * item.qty:>10}")
    print(f"  Subtotal {sale.subtotal}  Tax {sale.tax}  Total {sale.total}  [{sale.mode.value}]")


def run_checkout(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the checkout workflow via the BLL."""
    sale = core_logic.record_sale(context, translate_checkout(context, args))
    _print_sale(sale)
    return 0


def run_delete_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale reversal workflow via the BLL."""
    sale = core_logic.reverse_sale(context, args.sale_id)
    print(f"Deleted bill #{sale.bill_no}; stock restored for {len(sale.items)} lines")
    return 0


def run_edit_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale replacement workflow via the BLL."""
    billed = core_logic.get_sale(context, args.sale_id)
    sale = core_logic.replace_sale(
        context,
        billed.sale_id,
        translate_edit_cart(context, billed, args.items),
        mode=PaymentMode(args.mode) if args.mode else None,
        customer=args.customer,
        gst_rate_percent=args.gst,
        staff_id=args.staff_id,
    )
    _print_sale(sale)
    return 0


def run_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the purchase workflow via the BLL."""
    purchase = core_logic.record_purchase(context, translate_purchase(args))
    print(f"Recorded purchase {purchase.purchase_id} from {purchase.supplier}: total {purchase.total_amount}")
    return 0


def run_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the expense workflow via the BLL."""
    expense = core_logic.record_expense(
        context,
        date=_day(args.date),
        description=args.description,
        amount=args.amount,
        category=args.category,
    )
    print(f"Recorded expense {expense.expense_id} on {expense.date}: {expense.amount}")
    return 0


def run_opening_balance(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the opening balance workflow via the BLL."""
    entry = core_logic.set_opening_balance(context, _day(args.date), args.amount)
    print(f"Opening balance for {entry.date}: {entry.opening_balance}")
    return 0


def run_add_staff(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-staff workflow."""
    member = payroll.add_staff(context, name=args.name, role=args.role, salary=args.salary, staff_id=args.staff_id)
    print(f"Added staff {member.staff_id}: {member.name}")
    return 0


def run_attendance(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the attendance workflow."""
    payroll.record_attendance(context, args.staff_id, _day(args.date), AttendanceStatus(args.status))
    print(f"Attendance for {args.staff_id} on {_day(args.date)}: {args.status}")
    return 0


def run_pay_salary(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the salary payment workflow."""
    amount = args.amount
    if amount is None:
        staff = payroll.get_staff(context, args.staff_id)
        amount = payroll.payable_salary(staff, args.month, args.year).amount
    payment = payroll.record_salary_payment(
        context,
        args.staff_id,
        args.month,
        args.year,
        amount,
        paid_date=args.paid_date,
    )
    print(f"Salary {payment.month:02d}/{payment.year} for {args.staff_id}: paid {payment.amount} on {payment.paid_date}")
    return 0


def run_staff_finance(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the staff financial ledger workflow."""
    record = payroll.record_financial_transaction(
        context,
        args.staff_id,
        FinancialRecordType(args.record_type),
        args.amount,
        _day(args.date),
        args.notes,
    )
    print(f"Recorded {record.record_type.value} of {record.amount} for {args.staff_id}")
    return 0


def run_restore(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the backup restore workflow."""
    counts = transfer.restore_backup(context, args.input)
    print("Restore complete. " + ", ".join(f"{name}: {count}" for name, count in counts.items()))
    return 0


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the stock reporting workflow."""
    threshold = args.threshold
    if threshold is None:
        threshold = core_logic.low_stock_threshold(context)
    if args.status:
        products = core_logic.list_products_by_status(context, StockStatus(args.status), threshold=threshold)
    else:
        products = core_logic.list_products(context)
    print(f"{'ID':<12} {'Name':<30} {'Category':<16} {'Stock':>7}  Status")
    for product in products:
        status = core_logic.stock_status(product, threshold)
        print(f"{product.product_id:<12} {product.name:<30} {product.category:<16} {product.stock:>7}  {status.value}")
    return 0


def run_daily_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the daily report workflow."""
    report = reporting.build_daily_report(context, _day(args.date), search=args.search)
    print(f"Daily report for {report.report_date}")
    for label, value in (
        ("Opening balance", report.opening_balance),
        ("Total sales", report.total_sales),
        ("Cash sales", report.cash_sales),
        ("UPI sales", report.upi_sales),
        ("Transactions", report.transaction_count),
        ("Gross profit", report.gross_profit),
        ("Salary expense", report.salary_expense),
        ("Other expenses", report.other_expenses),
        ("Net profit", report.net_profit),
        ("Cash in hand", report.cash_in_hand),
        ("Purchases", report.total_purchases),
    ):
        print(f"  {label:<16} {value}")
    if report.sales:
        print("Bills:")
        for sale in report.sales:
            print(f"  #{sale.bill_no:<6} {sale.timestamp_iso[11:19]} {sale.customer:<20} {sale.mode.value:<5} {sale.total}")
    if report.stock_movement:
        print("Stock movement:")
        for row in report.stock_movement:
            print(f"  {row.name:<30} in {row.stock_in:>5} out {row.stock_out:>5} net {row.net:>5} now {row.current_stock:>5}")
    return 0


def run_salary_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the payroll reporting workflow."""
    today = date.today()
    month = args.month or today.month
    year = args.year or today.year
    staff = [payroll.get_staff(context, args.staff_id)] if args.staff_id else payroll.list_staff(context)
    for member in staff:
        status = payroll.salary_status(member, month, year)
        paid = f"paid {status.payment.amount}" if status.paid and status.payment else "unpaid"
        print(
            f"{member.staff_id:<12} {member.name:<24} days {status.payable.days_present}/"
            f"{status.payable.days_in_month} payable {status.payable.amount} {paid}"
        )
    return 0


def run_export_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the report export workflow."""
    day = _day(args.date)
    destination = args.output or Path.cwd() / f"Report_{day}.xlsx"
    path = reporting.export_report(context, day, destination)
    print(f"Report written to {path}")
    return 0


def run_backup(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the backup workflow."""
    path = transfer.export_backup(context, args.output)
    print(f"Backup written to {path}")
    return 0


def run_template(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the product template workflow."""
    path = transfer.write_product_template(context, args.output)
    print(f"Template written to {path}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.PersistenceError):
        log.error("%s", error)
        return 4
    if isinstance(error, core_logic.LedgerError):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        return dispatch_command(context, args, command_table)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
