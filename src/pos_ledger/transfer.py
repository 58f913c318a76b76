"""Bulk import and export adapters for spreadsheet files.

These helpers convert between external ``.xlsx`` files and the ledger's
collections:

* product import with flexible column headers and upsert-by-name semantics;
* a blank product template with dropdown validations;
* a full backup workbook and the matching restore.

Every write goes through :func:`~pos_ledger.core_logic.ledger_transaction`,
so an import or restore either lands completely or not at all.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import openpyxl
from openpyxl.styles import Font
from openpyxl.worksheet.datavalidation import DataValidation

from . import data_manager, log
from .constants import DEFAULT_CATEGORY, DEFAULT_UNIT, LAST_BILL_COUNTER, SheetName
from .core_logic import (
    COUNTERS,
    PRODUCTS,
    SETTINGS,
    RuntimeContext,
    ValidationError,
    _read_collection,
    adjust_stock,
    generate_id,
    ledger_transaction,
    list_products,
    to_money,
)


# Header spellings accepted for each import field, in priority order.
IMPORT_ALIASES: Mapping[str, Sequence[str]] = {
    "name": ("Name", "name", "Product", "product"),
    "category": ("Category", "category"),
    "price": ("Price", "price", "Sales Price", "SalesPrice"),
    "sales_price": ("Sales Price", "SalesPrice", "Price"),
    "purchase_price": ("Purchase Price", "PurchasePrice", "Cost"),
    "stock": ("Stock", "stock", "Qty", "Quantity"),
    "unit": ("Unit", "unit"),
}

TEMPLATE_HEADERS = ("Name", "Category", "Stock", "Unit", "PurchasePrice", "SalesPrice")
TEMPLATE_SAMPLE_ROWS = (
    ("Example Product", "Snacks", 100, "pcs", 8, 12),
    ("Milk Bread", "Breads", 50, "pcs", 30, 40),
)
TEMPLATE_UNITS = ("pcs", "pkt", "bun", "box", "dozen", "1kg", "500g", "250g", "100g", "kg", "1L", "500ml", "250ml", "L")
TEMPLATE_FALLBACK_CATEGORIES = ("General", "Breads", "Cakes", "Snacks")

# Settings key that carries the bill counter inside a backup workbook.
BACKUP_BILL_KEY = "lastBill"

BACKUP_SHEETS = (
    SheetName.SETTINGS.value,
    SheetName.PRODUCTS.value,
    SheetName.SALES.value,
    SheetName.EXPENSES.value,
    SheetName.PURCHASES.value,
    SheetName.STAFF.value,
    SheetName.DAILY_LOGS.value,
)


@dataclass(frozen=True)
class ImportRow:
    """A product row read from an external spreadsheet."""

    name: str
    category: Optional[str] = None
    price: Optional[Decimal] = None
    sales_price: Optional[Decimal] = None
    purchase_price: Optional[Decimal] = None
    stock: int = 0
    unit: Optional[str] = None

    @property
    def effective_sales_price(self) -> Optional[Decimal]:
        return self.sales_price if self.sales_price is not None else self.price


@dataclass(frozen=True)
class ImportResult:
    added: int
    updated: int


def _pick(row: Mapping[str, Any], aliases: Sequence[str]) -> Any:
    for header in aliases:
        value = row.get(header)
        if value not in (None, ""):
            return value
    return None


def _optional_money(value: Any, *, field_name: str, line: int) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return to_money(value, field_name=field_name)
    except ValidationError as exc:
        raise ValidationError(f"Row {line}: {exc}") from exc


def parse_import_row(row: Mapping[str, Any], *, line: int = 0) -> Optional[ImportRow]:
    """Map one header-keyed row onto :class:`ImportRow`.

    Returns ``None`` for rows without a name, or without both a price and a
    stock value; those rows are silently skipped by the importer.

    Raises:
        ValidationError: If a price or stock cell holds something that is not
            a number, or the stock is negative.
    """

    name = _pick(row, IMPORT_ALIASES["name"])
    price_raw = _pick(row, IMPORT_ALIASES["price"])
    stock_raw = _pick(row, IMPORT_ALIASES["stock"])
    if name is None or not str(name).strip() or (price_raw is None and stock_raw is None):
        return None

    stock = 0
    if stock_raw is not None:
        try:
            stock = data_manager.to_int(stock_raw)
        except ValueError as exc:
            raise ValidationError(f"Row {line}: invalid stock {stock_raw!r}") from exc
        if stock < 0:
            log.error("Import row %d has negative stock %d", line, stock)
            raise ValidationError(f"Row {line}: stock must be zero or positive")

    category = _pick(row, IMPORT_ALIASES["category"])
    unit = _pick(row, IMPORT_ALIASES["unit"])
    return ImportRow(
        name=str(name).strip(),
        category=str(category).strip() if category is not None else None,
        price=_optional_money(price_raw, field_name="price", line=line),
        sales_price=_optional_money(_pick(row, IMPORT_ALIASES["sales_price"]), field_name="sales_price", line=line),
        purchase_price=_optional_money(
            _pick(row, IMPORT_ALIASES["purchase_price"]), field_name="purchase_price", line=line
        ),
        stock=stock,
        unit=str(unit).strip() if unit is not None else None,
    )


def read_import_rows(path: Path) -> List[ImportRow]:
    """Read product rows from the first worksheet of ``path``.

    The first row is treated as the header; column names are matched against
    :data:`IMPORT_ALIASES`.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValidationError: If the sheet has no usable product rows or a numeric
            cell is malformed.
    """

    source = Path(path).expanduser().resolve()
    if not source.exists():
        raise FileNotFoundError(f"Import file not found: {source}")

    workbook = openpyxl.load_workbook(source, read_only=True, data_only=True)
    try:
        sheet = workbook.worksheets[0]
        raw_rows = list(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()

    if not raw_rows:
        raise ValidationError(f"Import file is empty: {source}")
    headers = [str(cell).strip() if cell is not None else "" for cell in raw_rows[0]]

    rows = []
    for line, raw in enumerate(raw_rows[1:], start=2):
        parsed = parse_import_row(dict(zip(headers, raw)), line=line)
        if parsed is not None:
            rows.append(parsed)

    if not rows:
        log.error("No valid product rows found in '%s'", source)
        raise ValidationError("No valid product data found. Expected columns such as Name, Price, Stock, Category.")
    log.debug("Read %d import rows from '%s'", len(rows), source)
    return rows


def import_products(context: RuntimeContext, source: Union[Path, str, Iterable[ImportRow]]) -> ImportResult:
    """Upsert products from a spreadsheet path or pre-parsed rows.

    A row whose name matches an existing product (case-insensitively) adds its
    stock through the Stock Tracker and overwrites prices and category when
    the row supplies them. Unmatched rows become new products with a fresh id.
    The whole import commits as one transaction.

    Args:
        context (RuntimeContext): Runtime context providing workbook access.
        source (Path | str | Iterable[ImportRow]): File to read with
            :func:`read_import_rows`, or rows already parsed.

    Returns:
        ImportResult: Number of products added and updated.

    Raises:
        ValidationError: If the file holds no usable rows.
        PersistenceError: If the workbook cannot be saved.
    """

    rows = read_import_rows(Path(source)) if isinstance(source, (str, Path)) else list(source)
    added = 0
    updated = 0
    with ledger_transaction(context) as transaction:
        products = transaction.collection(PRODUCTS)
        for row in rows:
            if row.stock < 0:
                log.error("Import of '%s' rejected: negative stock %d", row.name, row.stock)
                raise ValidationError(f"Product '{row.name}': stock must be zero or positive")
            key = row.name.lower()
            index = next((i for i, product in enumerate(products) if product.name.lower() == key), None)
            if index is not None:
                existing = products[index]
                if row.stock:
                    adjust_stock(transaction, existing.product_id, row.stock)
                changes: Dict[str, Any] = {}
                if row.effective_sales_price is not None:
                    changes["sales_price"] = row.effective_sales_price
                if row.purchase_price is not None:
                    changes["purchase_price"] = row.purchase_price
                if row.category:
                    changes["category"] = row.category
                if changes:
                    products[index] = replace(products[index], **changes)
                updated += 1
            else:
                products.append(
                    data_manager.ProductRow(
                        product_id=generate_id(),
                        name=row.name,
                        category=row.category or DEFAULT_CATEGORY,
                        unit=row.unit or DEFAULT_UNIT,
                        purchase_price=row.purchase_price or Decimal("0"),
                        sales_price=row.effective_sales_price or Decimal("0"),
                        stock=row.stock,
                    )
                )
                added += 1
    log.info("Imported products: %d added, %d updated", added, updated)
    return ImportResult(added=added, updated=updated)


def _bold_header(sheet) -> None:
    for cell in sheet[1]:
        cell.font = Font(bold=True)


def write_product_template(context: RuntimeContext, destination: Path) -> Path:
    """Write a blank import template with dropdowns for Unit and Category.

    The "Valid Options" sheet lists the allowed units and the categories in
    use (or a starter set for an empty catalog); the Template sheet's Category
    and Unit columns validate against those lists.
    """

    categories = sorted({product.category for product in list_products(context) if product.category})
    if not categories:
        categories = list(TEMPLATE_FALLBACK_CATEGORIES)

    workbook = openpyxl.Workbook()
    template = workbook.active
    template.title = "Template"
    template.append(list(TEMPLATE_HEADERS))
    for sample in TEMPLATE_SAMPLE_ROWS:
        template.append(list(sample))
    _bold_header(template)

    options = workbook.create_sheet(title="Valid Options")
    options.append(["Valid Units", "Existing Categories"])
    for index in range(max(len(TEMPLATE_UNITS), len(categories))):
        options.append(
            [
                TEMPLATE_UNITS[index] if index < len(TEMPLATE_UNITS) else None,
                categories[index] if index < len(categories) else None,
            ]
        )
    _bold_header(options)

    unit_rule = DataValidation(
        type="list",
        formula1=f"'Valid Options'!$A$2:$A${len(TEMPLATE_UNITS) + 1}",
        showErrorMessage=True,
        errorTitle="Invalid Unit",
        error="Please select a valid unit from the options sheet",
    )
    category_rule = DataValidation(
        type="list",
        formula1=f"'Valid Options'!$B$2:$B${len(categories) + 1}",
        showErrorMessage=True,
        errorTitle="Invalid Category",
        error="Please use an existing category or add to the list",
    )
    template.add_data_validation(unit_rule)
    template.add_data_validation(category_rule)
    unit_rule.add("D2:D1000")
    category_rule.add("B2:B1000")

    target = Path(destination).expanduser().resolve()
    data_manager.save_workbook(workbook, target)
    log.info("Wrote product template to '%s'", target)
    return target


def export_backup(context: RuntimeContext, destination: Path) -> Path:
    """Write every collection to a standalone backup workbook.

    The backup uses the store's own sheet layout, so Sales and Purchases carry
    both a readable ``ItemsSummary`` and the ``ItemsJSON`` needed for restore.
    The bill counter travels as the ``lastBill`` entry of the Settings sheet.
    """

    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)
    for sheet_name in BACKUP_SHEETS:
        data = _read_collection(context, sheet_name)
        if sheet_name == SETTINGS:
            data = dict(data)
            last_bill = data_manager.to_int(_read_collection(context, COUNTERS).get(LAST_BILL_COUNTER))
            if last_bill:
                data[BACKUP_BILL_KEY] = last_bill
        data_manager.replace_collection(workbook, sheet_name, data)

    target = Path(destination).expanduser().resolve()
    data_manager.save_workbook(workbook, target)
    log.info("Exported backup to '%s'", target)
    return target


def restore_backup(context: RuntimeContext, source: Path) -> Dict[str, int]:
    """Replace the ledger with the contents of a backup workbook.

    All collections are replaced in one transaction. The bill counter only
    moves forward, so bill numbers issued before the restore are never handed
    out again.

    Returns:
        dict[str, int]: Number of records restored per collection.

    Raises:
        FileNotFoundError: If ``source`` does not exist.
        ValidationError: If the backup has no products or a sheet cannot be
            decoded.
        PersistenceError: If the workbook cannot be saved.
    """

    backup = data_manager.open_workbook(Path(source))
    try:
        restored = {name: data_manager.get_collection(backup, name) for name in BACKUP_SHEETS}
    except (ValueError, KeyError) as exc:
        log.error("Backup '%s' could not be decoded: %s", source, exc)
        raise ValidationError(f"Backup file is not readable: {exc}") from exc

    if not restored[PRODUCTS]:
        log.error("Backup '%s' contains no products", source)
        raise ValidationError("No products found in backup. Please check sheet names.")

    settings = dict(restored[SETTINGS])
    backup_bill = data_manager.to_int(settings.pop(BACKUP_BILL_KEY, None))

    with ledger_transaction(context) as transaction:
        for name, data in restored.items():
            if name == SETTINGS:
                if settings:
                    transaction.replace(SETTINGS, settings)
                continue
            transaction.replace(name, data)
        counters = transaction.collection(COUNTERS)
        if backup_bill > data_manager.to_int(counters.get(LAST_BILL_COUNTER)):
            counters[LAST_BILL_COUNTER] = backup_bill

    counts = {name: len(data) for name, data in restored.items() if name != SETTINGS}
    log.info("Restored backup from '%s': %s", source, counts)
    return counts
