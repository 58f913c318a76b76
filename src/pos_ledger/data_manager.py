"""Data access layer for the POS ledger.

This module provides low-level helpers that read from and write to the
master workbook. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening and atomically persisting the Excel file.
3. Collection operations: every worksheet is a named collection that is read
   as a whole (:func:`get_collection`) and replaced as a whole
   (:func:`replace_collection`). Nested lists are stored as JSON text cells.
"""


from __future__ import annotations

import configparser
import json
import os
import tempfile
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from openpyxl.styles import Font
from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import (
    DEFAULT_CUSTOMER,
    DEFAULT_UNIT,
    AttendanceStatus,
    FinancialRecordType,
    PaymentMode,
    SheetName,
)


CONFIG_FILE_NAME = "config.ini"

SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.SETTINGS.value: ["Key", "Value"],
    SheetName.COUNTERS.value: ["Key", "Value"],
    SheetName.PRODUCTS.value: [
        "ProductID",
        "ProductName",
        "Category",
        "Unit",
        "PurchasePrice",
        "SalesPrice",
        "Stock",
    ],
    SheetName.STAFF.value: [
        "StaffID",
        "StaffName",
        "Role",
        "Salary",
        "Employed",
        "AttendanceJSON",
        "SalaryPaymentsJSON",
        "FinancialRecordsJSON",
    ],
    SheetName.SALES.value: [
        "SaleID",
        "BillNo",
        "Timestamp",
        "Customer",
        "Mode",
        "Subtotal",
        "Tax",
        "Total",
        "StaffID",
        "ItemsSummary",
        "ItemsJSON",
    ],
    SheetName.PURCHASES.value: [
        "PurchaseID",
        "Date",
        "Supplier",
        "TotalAmount",
        "Notes",
        "Timestamp",
        "ItemsSummary",
        "ItemsJSON",
    ],
    SheetName.EXPENSES.value: [
        "ExpenseID",
        "Date",
        "Description",
        "Category",
        "Amount",
        "Timestamp",
    ],
    SheetName.DAILY_LOGS.value: ["Date", "OpeningBalance", "UpdatedAt"],
}

KEY_VALUE_SHEETS = frozenset({SheetName.SETTINGS.value, SheetName.COUNTERS.value})


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    shop_name: str
    schema_version: str
    default_staff_id: str
    default_customer: str = DEFAULT_CUSTOMER
    default_unit: str = DEFAULT_UNIT


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a row from the ``Products`` sheet."""

    product_id: str
    name: str
    category: str
    unit: str
    purchase_price: Decimal
    sales_price: Decimal
    stock: int


@dataclass(frozen=True)
class SaleItem:
    """One line of a committed sale; ``price`` is the checkout-time snapshot."""

    product_id: str
    name: str
    unit: str
    price: Decimal
    qty: int


@dataclass(frozen=True)
class SaleRow:
    """In-memory view of a row from the ``Sales`` sheet."""

    sale_id: str
    bill_no: int
    timestamp_iso: str
    items: Tuple[SaleItem, ...]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    mode: PaymentMode
    customer: str
    staff_id: Optional[str]


@dataclass(frozen=True)
class PurchaseItem:
    """One line of a supplier purchase."""

    product_id: str
    product_name: str
    quantity: int
    purchase_price: Decimal


@dataclass(frozen=True)
class PurchaseRow:
    """In-memory view of a row from the ``Purchases`` sheet."""

    purchase_id: str
    date: str
    supplier: str
    items: Tuple[PurchaseItem, ...]
    total_amount: Decimal
    notes: Optional[str]
    timestamp_iso: str


@dataclass(frozen=True)
class ExpenseRow:
    """In-memory view of a row from the ``Expenses`` sheet."""

    expense_id: str
    date: str
    description: str
    category: str
    amount: Decimal
    timestamp_iso: str


@dataclass(frozen=True)
class AttendanceRecord:
    date: str
    status: AttendanceStatus


@dataclass(frozen=True)
class SalaryPayment:
    month: int
    year: int
    amount: Decimal
    paid: bool
    paid_date: Optional[str]


@dataclass(frozen=True)
class FinancialRecord:
    record_id: str
    record_type: FinancialRecordType
    amount: Decimal
    date: str
    notes: Optional[str]
    timestamp_iso: str


@dataclass(frozen=True)
class StaffRow:
    """In-memory view of a row from the ``Staff`` sheet."""

    staff_id: str
    name: str
    role: str
    salary: Decimal
    employed: bool
    attendance_records: Tuple[AttendanceRecord, ...] = ()
    salary_payments: Tuple[SalaryPayment, ...] = ()
    financial_records: Tuple[FinancialRecord, ...] = ()


@dataclass(frozen=True)
class DailyLogRow:
    """In-memory view of a row from the ``DailyLogs`` sheet."""

    date: str
    opening_balance: Decimal
    updated_at: Optional[str]


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification, which allows the caller to deliberately target a
    non-standard location. When no explicit path is given the function walks up
    from the current working directory toward the filesystem root looking for a
    file named ``CONFIG_FILE_NAME``. The first match that exists on disk is
    considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search. May be relative to the current working directory.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Initialized parser containing the raw
            configuration data.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` must define ``DataFile``, ``ShopName`` and ``SchemaVersion``;
    ``[Defaults]`` must define ``DefaultStaff`` and may override
    ``DefaultCustomer`` and ``DefaultUnit``. Relative data file paths are
    anchored at ``base_path`` (or the working directory) and resolved.

    Raises:
        KeyError: If one of the required sections or options is missing from the
            configuration.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        shop_name = parser.get("System", "ShopName")
        schema_version = parser.get("System", "SchemaVersion")
        default_staff = parser.get("Defaults", "DefaultStaff")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    default_customer = parser.get("Defaults", "DefaultCustomer", fallback=DEFAULT_CUSTOMER)
    default_unit = parser.get("Defaults", "DefaultUnit", fallback=DEFAULT_UNIT)

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        shop_name=shop_name,
        schema_version=schema_version,
        default_staff_id=default_staff,
        default_customer=default_customer,
        default_unit=default_unit,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the master Excel workbook and return a live ``openpyxl`` workbook.

    Sheets introduced after the workbook was created are added on the fly with
    their header row so older files keep loading.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    for sheet_name in SHEET_COLUMNS:
        ensure_sheet(wb, sheet_name)
    return wb


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook atomically at ``destination``.

    The workbook is serialized into a temporary file inside the destination
    directory and then moved over the target with :func:`os.replace`, so a
    reader either sees the previous file or the complete new one.

    Raises:
        OSError: If the temporary file cannot be written or moved into place.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.stem}-", suffix=dest.suffix, dir=dest.parent)
    os.close(fd)
    try:
        workbook.save(tmp_name)
        os.replace(tmp_name, dest)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def ensure_sheet(workbook: Workbook, sheet_name: str) -> None:
    """Create ``sheet_name`` with its header row when the workbook lacks it."""

    if sheet_name in workbook.sheetnames:
        return
    sheet = workbook.create_sheet(title=sheet_name)
    sheet.append(list(SHEET_COLUMNS[sheet_name]))
    log.debug("Created missing sheet '%s'", sheet_name)


def iter_raw_rows(workbook: Workbook, sheet_name: str) -> Iterable[Tuple[Any, ...]]:
    """Yield the non-empty data rows of ``sheet_name`` padded to its column count."""

    width = len(SHEET_COLUMNS[sheet_name])
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None and cell != "" for cell in raw):
            padded = tuple(raw[:width]) + (None,) * max(0, width - len(raw))
            yield padded


def snapshot_sheet(workbook: Workbook, sheet_name: str) -> List[Tuple[Any, ...]]:
    """Capture every row of ``sheet_name`` (header included) for later rollback."""

    sheet = workbook[sheet_name]
    return [tuple(row) for row in sheet.iter_rows(values_only=True)]


def restore_sheet(workbook: Workbook, sheet_name: str, rows: Sequence[Sequence[Any]]) -> None:
    """Overwrite ``sheet_name`` with rows previously captured by :func:`snapshot_sheet`."""

    # recreate the sheet in place; appending after delete_rows leaves gaps
    position = workbook.sheetnames.index(sheet_name)
    workbook.remove(workbook[sheet_name])
    sheet = workbook.create_sheet(title=sheet_name, index=position)
    for row in rows:
        sheet.append(list(row))
    if rows:
        for cell in sheet[1]:
            cell.font = Font(bold=True)


def _rewrite_sheet(workbook: Workbook, sheet_name: str, rows: Iterable[Sequence[Any]]) -> None:
    ensure_sheet(workbook, sheet_name)
    restore_sheet(workbook, sheet_name, [list(SHEET_COLUMNS[sheet_name]), *rows])


def get_collection(workbook: Workbook, sheet_name: str) -> Any:
    """Read a whole collection from the workbook.

    Key/value sheets (``Settings`` and ``Counters``) come back as a ``dict``;
    every other sheet comes back as a list of its row dataclasses in sheet
    order.

    Raises:
        KeyError: If ``sheet_name`` is not a managed collection.
    """

    if sheet_name not in SHEET_COLUMNS:
        raise KeyError(f"Unknown collection: {sheet_name}")
    ensure_sheet(workbook, sheet_name)
    if sheet_name in KEY_VALUE_SHEETS:
        return {str(key): value for key, value in iter_raw_rows(workbook, sheet_name) if key is not None}
    _, deserializer = _ROW_CODECS[sheet_name]
    return [deserializer(raw) for raw in iter_raw_rows(workbook, sheet_name)]


def replace_collection(workbook: Workbook, sheet_name: str, data: Any) -> None:
    """Replace a whole collection in the workbook with ``data``.

    ``data`` is a mapping for key/value sheets and an iterable of row
    dataclasses otherwise. Only the in-memory workbook changes; callers must
    save it to make the replacement durable.

    Raises:
        KeyError: If ``sheet_name`` is not a managed collection.
    """

    if sheet_name not in SHEET_COLUMNS:
        raise KeyError(f"Unknown collection: {sheet_name}")
    if sheet_name in KEY_VALUE_SHEETS:
        rows = [[key, _to_cell(value)] for key, value in dict(data).items()]
    else:
        serializer, _ = _ROW_CODECS[sheet_name]
        rows = [serializer(record) for record in data]
    _rewrite_sheet(workbook, sheet_name, rows)


def has_legacy_attendance(workbook: Workbook) -> bool:
    """Return ``True`` when any staff attendance entry lacks a ``status`` string."""

    for raw in iter_raw_rows(workbook, SheetName.STAFF.value):
        for entry in _load_json_list(raw[5]):
            if isinstance(entry, Mapping) and not entry.get("status"):
                return True
    return False


# ---------------------------------------------------------------------------
# Value coercion helpers
# ---------------------------------------------------------------------------


def to_decimal(value: Any, default: str = "0") -> Decimal:
    """Coerce a cell or JSON value into :class:`~decimal.Decimal`."""

    if value is None or value == "":
        return Decimal(default)
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {value!r}") from exc


def to_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    return int(to_decimal(value))


def to_text(value: Any) -> str:
    """Render cell values as text, normalizing spreadsheet dates to ISO strings."""

    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return bool(value)


def _optional_text(value: Any) -> Optional[str]:
    return to_text(value) if value not in (None, "") else None


def _to_cell(value: Any) -> Any:
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value)
    return value


def _load_json_list(raw: Any) -> List[Any]:
    if raw in (None, ""):
        return []
    if isinstance(raw, list):
        return raw
    loaded = json.loads(raw)
    return loaded if isinstance(loaded, list) else []


def _money(value: Decimal) -> str:
    return str(value)


# ---------------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------------


def summarize_sale_items(items: Iterable[SaleItem]) -> str:
    """Render sale lines as ``"Name (qty), ..."`` for human readers."""

    return ", ".join(f"{item.name} ({item.qty})" for item in items)


def summarize_purchase_items(items: Iterable[PurchaseItem]) -> str:
    return ", ".join(f"{item.product_name} ({item.quantity})" for item in items)


def encode_sale_items(items: Iterable[SaleItem]) -> str:
    return json.dumps(
        [
            {
                "productId": item.product_id,
                "name": item.name,
                "unit": item.unit,
                "price": _money(item.price),
                "qty": item.qty,
            }
            for item in items
        ]
    )


def decode_sale_items(raw: Any) -> Tuple[SaleItem, ...]:
    """Decode a sale's ``ItemsJSON`` cell.

    Older exports keyed the product by ``id`` rather than ``productId``; both
    spellings are accepted.
    """

    items = []
    for entry in _load_json_list(raw):
        items.append(
            SaleItem(
                product_id=str(entry.get("productId") or entry.get("id") or ""),
                name=str(entry.get("name", "")),
                unit=str(entry.get("unit") or DEFAULT_UNIT),
                price=to_decimal(entry.get("price")),
                qty=to_int(entry.get("qty")),
            )
        )
    return tuple(items)


def encode_purchase_items(items: Iterable[PurchaseItem]) -> str:
    return json.dumps(
        [
            {
                "productId": item.product_id,
                "productName": item.product_name,
                "quantity": item.quantity,
                "purchasePrice": _money(item.purchase_price),
            }
            for item in items
        ]
    )


def decode_purchase_items(raw: Any) -> Tuple[PurchaseItem, ...]:
    return tuple(
        PurchaseItem(
            product_id=str(entry.get("productId", "")),
            product_name=str(entry.get("productName", "")),
            quantity=to_int(entry.get("quantity")),
            purchase_price=to_decimal(entry.get("purchasePrice")),
        )
        for entry in _load_json_list(raw)
    )


def decode_attendance(raw: Any) -> Tuple[AttendanceRecord, ...]:
    """Decode attendance entries, mapping the legacy boolean form onto statuses.

    Entries written before statuses existed carry ``present: true`` and no
    ``status``; they become :attr:`AttendanceStatus.PRESENT`. Unknown strings
    count as absent.
    """

    records = []
    for entry in _load_json_list(raw):
        status_raw = entry.get("status")
        if not status_raw:
            status = AttendanceStatus.PRESENT if entry.get("present") is True else AttendanceStatus.ABSENT
        else:
            try:
                status = AttendanceStatus(str(status_raw).lower())
            except ValueError:
                status = AttendanceStatus.ABSENT
        records.append(AttendanceRecord(date=to_text(entry.get("date"))[:10], status=status))
    return tuple(records)


def encode_attendance(records: Iterable[AttendanceRecord]) -> str:
    return json.dumps([{"date": record.date, "status": record.status.value} for record in records])


def decode_salary_payments(raw: Any) -> Tuple[SalaryPayment, ...]:
    return tuple(
        SalaryPayment(
            month=to_int(entry.get("month")),
            year=to_int(entry.get("year")),
            amount=to_decimal(entry.get("amount")),
            paid=to_bool(entry.get("paid")),
            paid_date=_optional_text(entry.get("paidDate")),
        )
        for entry in _load_json_list(raw)
    )


def encode_salary_payments(payments: Iterable[SalaryPayment]) -> str:
    return json.dumps(
        [
            {
                "month": payment.month,
                "year": payment.year,
                "amount": _money(payment.amount),
                "paid": payment.paid,
                "paidDate": payment.paid_date,
            }
            for payment in payments
        ]
    )


def decode_financial_records(raw: Any) -> Tuple[FinancialRecord, ...]:
    return tuple(
        FinancialRecord(
            record_id=str(entry.get("id", "")),
            record_type=FinancialRecordType(str(entry.get("type", "")).lower()),
            amount=to_decimal(entry.get("amount")),
            date=to_text(entry.get("date")),
            notes=_optional_text(entry.get("notes")),
            timestamp_iso=to_text(entry.get("timestamp")),
        )
        for entry in _load_json_list(raw)
    )


def encode_financial_records(records: Iterable[FinancialRecord]) -> str:
    return json.dumps(
        [
            {
                "id": record.record_id,
                "type": record.record_type.value,
                "amount": _money(record.amount),
                "date": record.date,
                "notes": record.notes,
                "timestamp": record.timestamp_iso,
            }
            for record in records
        ]
    )


def serialize_product(record: ProductRow) -> list[object]:
    """Convert a product dataclass into the worksheet column ordering."""

    return [
        record.product_id,
        record.name,
        record.category,
        record.unit,
        record.purchase_price,
        record.sales_price,
        record.stock,
    ]


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw worksheet row into a strongly typed product record.

    Identifiers and names are coerced to ``str`` so Excel's habit of turning
    numeric-looking ids into numbers never leaks upward.
    """

    product_id, name, category, unit, purchase_raw, sales_raw, stock_raw = raw_row
    return ProductRow(
        product_id=str(product_id),
        name=to_text(name),
        category=to_text(category),
        unit=to_text(unit) or DEFAULT_UNIT,
        purchase_price=to_decimal(purchase_raw, "0.00"),
        sales_price=to_decimal(sales_raw, "0.00"),
        stock=to_int(stock_raw),
    )


def serialize_sale(record: SaleRow) -> list[object]:
    """Convert a sale dataclass into the ``Sales`` column ordering."""

    return [
        record.sale_id,
        record.bill_no,
        record.timestamp_iso,
        record.customer,
        record.mode.value,
        record.subtotal,
        record.tax,
        record.total,
        record.staff_id,
        summarize_sale_items(record.items),
        encode_sale_items(record.items),
    ]


def deserialize_sale(raw_row: Sequence[object]) -> SaleRow:
    (
        sale_id,
        bill_no,
        timestamp_iso,
        customer,
        mode,
        subtotal,
        tax,
        total,
        staff_id,
        _summary,
        items_json,
    ) = raw_row
    return SaleRow(
        sale_id=str(sale_id),
        bill_no=to_int(bill_no),
        timestamp_iso=to_text(timestamp_iso),
        items=decode_sale_items(items_json),
        subtotal=to_decimal(subtotal),
        tax=to_decimal(tax),
        total=to_decimal(total),
        mode=PaymentMode(str(mode).lower()),
        customer=to_text(customer),
        staff_id=_optional_text(staff_id),
    )


def serialize_purchase(record: PurchaseRow) -> list[object]:
    return [
        record.purchase_id,
        record.date,
        record.supplier,
        record.total_amount,
        record.notes,
        record.timestamp_iso,
        summarize_purchase_items(record.items),
        encode_purchase_items(record.items),
    ]


def deserialize_purchase(raw_row: Sequence[object]) -> PurchaseRow:
    purchase_id, date_raw, supplier, total_amount, notes, timestamp_iso, _summary, items_json = raw_row
    return PurchaseRow(
        purchase_id=str(purchase_id),
        date=to_text(date_raw)[:10],
        supplier=to_text(supplier),
        items=decode_purchase_items(items_json),
        total_amount=to_decimal(total_amount),
        notes=_optional_text(notes),
        timestamp_iso=to_text(timestamp_iso),
    )


def serialize_expense(record: ExpenseRow) -> list[object]:
    return [
        record.expense_id,
        record.date,
        record.description,
        record.category,
        record.amount,
        record.timestamp_iso,
    ]


def deserialize_expense(raw_row: Sequence[object]) -> ExpenseRow:
    expense_id, date_raw, description, category, amount, timestamp_iso = raw_row
    return ExpenseRow(
        expense_id=str(expense_id),
        date=to_text(date_raw)[:10],
        description=to_text(description),
        category=to_text(category),
        amount=to_decimal(amount),
        timestamp_iso=to_text(timestamp_iso),
    )


def serialize_staff(record: StaffRow) -> list[object]:
    return [
        record.staff_id,
        record.name,
        record.role,
        record.salary,
        record.employed,
        encode_attendance(record.attendance_records),
        encode_salary_payments(record.salary_payments),
        encode_financial_records(record.financial_records),
    ]


def deserialize_staff(raw_row: Sequence[object]) -> StaffRow:
    staff_id, name, role, salary, employed, attendance, payments, finance = raw_row
    return StaffRow(
        staff_id=str(staff_id),
        name=to_text(name),
        role=to_text(role),
        salary=to_decimal(salary),
        employed=to_bool(employed) if employed is not None else True,
        attendance_records=decode_attendance(attendance),
        salary_payments=decode_salary_payments(payments),
        financial_records=decode_financial_records(finance),
    )


def serialize_daily_log(record: DailyLogRow) -> list[object]:
    return [record.date, record.opening_balance, record.updated_at]


def deserialize_daily_log(raw_row: Sequence[object]) -> DailyLogRow:
    date_raw, opening_balance, updated_at = raw_row
    return DailyLogRow(
        date=to_text(date_raw)[:10],
        opening_balance=to_decimal(opening_balance),
        updated_at=_optional_text(updated_at),
    )


_ROW_CODECS: Dict[str, Tuple[Callable[[Any], list], Callable[[Sequence[object]], Any]]] = {
    SheetName.PRODUCTS.value: (serialize_product, deserialize_product),
    SheetName.STAFF.value: (serialize_staff, deserialize_staff),
    SheetName.SALES.value: (serialize_sale, deserialize_sale),
    SheetName.PURCHASES.value: (serialize_purchase, deserialize_purchase),
    SheetName.EXPENSES.value: (serialize_expense, deserialize_expense),
    SheetName.DAILY_LOGS.value: (serialize_daily_log, deserialize_daily_log),
}
