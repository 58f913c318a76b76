"""Business logic layer for the POS ledger.

This module owns the rules that keep the sales ledger and the product catalog
consistent. It consumes the Data Access Layer (DAL) for all I/O; every
mutation is staged on a :class:`LedgerTransaction` and becomes durable only
when the whole transaction is committed, so a sale can never be stored
without its stock movement (or the other way round).
"""

from __future__ import annotations

import secrets
import string
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from openpyxl.utils.exceptions import IllegalCharacterError
from openpyxl.workbook import Workbook

from . import data_manager, log
from .constants import (
    DEFAULT_CATEGORY,
    DEFAULT_SETTINGS,
    EXPECTED_SCHEMA_VERSION,
    LAST_BILL_COUNTER,
    PaymentMode,
    SheetName,
    StockStatus,
)


PRODUCTS = SheetName.PRODUCTS.value
SALES = SheetName.SALES.value
PURCHASES = SheetName.PURCHASES.value
EXPENSES = SheetName.EXPENSES.value
STAFF = SheetName.STAFF.value
DAILY_LOGS = SheetName.DAILY_LOGS.value
SETTINGS = SheetName.SETTINGS.value
COUNTERS = SheetName.COUNTERS.value

_ID_ALPHABET = string.ascii_lowercase + string.digits


class LedgerError(Exception):
    """Base class for every error raised by the ledger."""


class ValidationError(LedgerError, ValueError):
    """Raised when a required field is missing or malformed."""


class InvalidPurchase(ValidationError):
    """Raised when a purchase has no items or a non-positive quantity or price."""


class InsufficientStock(LedgerError):
    """Raised when a checkout requests more units than the catalog holds."""

    def __init__(self, product_id: str, name: str, requested: int, available: int) -> None:
        super().__init__(
            f"Insufficient stock for '{name}' ({product_id}): requested {requested}, available {available}"
        )
        self.product_id = product_id
        self.name = name
        self.requested = requested
        self.available = available


class NotFound(LedgerError):
    """Raised when a product, sale, or staff id is unknown."""


class PersistenceError(LedgerError):
    """Raised when the workbook cannot be written; no partial state is kept."""


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and workbook references used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class CartLine:
    """One line of an in-progress cart.

    ``stock`` is the stock level the presentation layer saw when the line was
    added; checkout never trusts it and re-reads the live catalog instead.
    """

    product_id: str
    name: str
    unit: str
    price: Decimal
    qty: int
    stock: Optional[int] = None

    @classmethod
    def from_product(cls, product: data_manager.ProductRow, qty: int = 1) -> "CartLine":
        return cls(
            product_id=product.product_id,
            name=product.name,
            unit=product.unit,
            price=product.sales_price,
            qty=qty,
            stock=product.stock,
        )


@dataclass(frozen=True)
class CheckoutCommand:
    """User intent for committing a cart as a sale."""

    cart: Sequence[CartLine]
    mode: PaymentMode
    customer: Optional[str] = None
    gst_rate_percent: Optional[Decimal] = None
    staff_id: Optional[str] = None
    preserved_bill_no: Optional[int] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class SaleTotals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal


@dataclass(frozen=True)
class SaleDraft:
    """Cart re-seeded from a reversed sale, carrying its bill number forward."""

    cart: Tuple[CartLine, ...]
    preserved_bill_no: int
    mode: PaymentMode
    customer: str


@dataclass(frozen=True)
class PurchaseLine:
    product_id: str
    quantity: int
    purchase_price: Decimal


@dataclass(frozen=True)
class PurchaseCommand:
    """User intent for recording goods received from a supplier."""

    supplier: str
    date: Union[str, date]
    items: Sequence[PurchaseLine]
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


class LedgerTransaction:
    """Stage whole-collection changes and commit them as one durable unit.

    Collections are copied out of the workbook the first time they are
    requested through :meth:`collection`; callers mutate the returned list or
    dict in place. :meth:`commit` writes every staged collection back and saves
    the workbook atomically. If saving fails the touched sheets are restored to
    their previous content and :class:`PersistenceError` is raised. Any other
    failure while writing also restores every touched sheet before the error
    propagates; text openpyxl cannot store surfaces as :class:`ValidationError`.
    """

    def __init__(self, context: RuntimeContext) -> None:
        self.context = context
        self._staged: Dict[str, Any] = {}
        self._closed = False

    @property
    def touched(self) -> Tuple[str, ...]:
        return tuple(self._staged)

    def collection(self, sheet_name: str) -> Any:
        """Return the staged, mutable copy of ``sheet_name``."""

        self._require_open()
        if sheet_name not in self._staged:
            current = _read_collection(self.context, sheet_name)
            self._staged[sheet_name] = dict(current) if isinstance(current, dict) else list(current)
        return self._staged[sheet_name]

    def replace(self, sheet_name: str, data: Any) -> None:
        """Stage ``data`` as the complete new content of ``sheet_name``."""

        self._require_open()
        self._staged[sheet_name] = dict(data) if isinstance(data, Mapping) else list(data)

    def commit(self) -> None:
        self._require_open()
        self._closed = True
        if not self._staged:
            return

        workbook = self.context.workbook
        snapshots = {name: data_manager.snapshot_sheet(workbook, name) for name in self._staged}
        try:
            for name, data in self._staged.items():
                data_manager.replace_collection(workbook, name, data)
            data_manager.save_workbook(workbook, self.context.settings.data_file)
        except BaseException as exc:
            for name, rows in snapshots.items():
                data_manager.restore_sheet(workbook, name, rows)
            log.error("Failed to persist %s: %s", ", ".join(self._staged), exc)
            if isinstance(exc, OSError):
                raise PersistenceError(f"Unable to save workbook '{self.context.settings.data_file}': {exc}") from exc
            if isinstance(exc, IllegalCharacterError):
                raise ValidationError(f"Text contains characters the workbook cannot store: {exc}") from exc
            raise
        finally:
            _invalidate_cache(self.context, *self._staged)
        log.debug("Committed collections: %s", ", ".join(self._staged))

    def discard(self) -> None:
        self._staged.clear()
        self._closed = True

    def _require_open(self) -> None:
        if self._closed:
            raise RuntimeError("Ledger transaction already closed")


@contextmanager
def ledger_transaction(context: RuntimeContext) -> Iterator[LedgerTransaction]:
    """Yield a :class:`LedgerTransaction` committed on clean exit.

    Any exception raised inside the block discards the staged changes and
    propagates unchanged; nothing reaches the workbook.
    """

    transaction = LedgerTransaction(context)
    try:
        yield transaction
    except BaseException:
        transaction.discard()
        raise
    transaction.commit()


# ---------------------------------------------------------------------------
# Cache helpers
# ---------------------------------------------------------------------------


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    """Return a mutable cache bucket dedicated to the supplied name.

    The business logic layer keeps one bucket per collection so repeated
    reads do not re-scan the worksheet.
    """

    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict one or more cache buckets after mutating workbook state.

    Missing buckets are ignored so callers can request targeted invalidation
    without checking first.
    """

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    for name in names:
        context._cache.pop(name, None)


def _read_collection(context: RuntimeContext, sheet_name: str) -> Any:
    bucket = _get_cache_bucket(context, sheet_name)
    if "all" not in bucket:
        bucket["all"] = data_manager.get_collection(context.workbook, sheet_name)
        log.debug("Populated %s cache with %d entries", sheet_name, len(bucket["all"]))
    return bucket["all"]


def _products_by_id(context: RuntimeContext) -> Dict[str, data_manager.ProductRow]:
    bucket = _get_cache_bucket(context, PRODUCTS)
    if "by_id" not in bucket:
        bucket["by_id"] = {product.product_id: product for product in _read_collection(context, PRODUCTS)}
    return bucket["by_id"]


def _index_of(records: Sequence[Any], attribute: str, value: Any) -> Optional[int]:
    for index, record in enumerate(records):
        if getattr(record, attribute) == value:
            return index
    return None


# ---------------------------------------------------------------------------
# Runtime / context management
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook for the BLL.

    The helper resolves ``config.ini``, parses settings, opens the master
    workbook, and then runs the one-time attendance migration so every later
    read sees the closed status enumeration.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Fully populated context ready for orchestration
            functions.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    context = RuntimeContext(settings=settings, workbook=workbook)
    migrate_legacy_attendance(context)
    return context


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook from disk into a fresh context with empty caches.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook)


def migrate_legacy_attendance(context: RuntimeContext) -> bool:
    """Rewrite boolean ``present`` attendance entries into explicit statuses.

    The DAL already decodes the legacy shape while reading, so rewriting the
    staff collection once is enough to make the stored form canonical.

    Returns:
        bool: ``True`` when the workbook contained legacy entries and was
            rewritten.
    """
    if not data_manager.has_legacy_attendance(context.workbook):
        return False
    with ledger_transaction(context) as transaction:
        transaction.collection(STAFF)
    log.info("Migrated legacy attendance records to status values")
    return True


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def generate_id(*, prefix: str = "_") -> str:
    """Return a short random identifier such as ``_k3x9a0b1z``."""

    return prefix + "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` as naive local time, defaulting to now.

    Aware datetimes are converted to local time before their offset is
    dropped so every stored timestamp shares one calendar.
    """

    if candidate is None:
        return datetime.now()
    if candidate.tzinfo is not None:
        return candidate.astimezone().replace(tzinfo=None)
    return candidate


def format_timestamp(moment: datetime) -> str:
    return moment.isoformat(timespec="milliseconds")


def normalize_date(value: Union[str, date, datetime, None], *, field_name: str = "date") -> str:
    """Return ``value`` as a ``YYYY-MM-DD`` string.

    Raises:
        ValidationError: If ``value`` is missing or not a calendar date.
    """

    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not value or not str(value).strip():
        raise ValidationError(f"Missing required field: {field_name}")
    try:
        return date.fromisoformat(str(value).strip()).isoformat()
    except ValueError as exc:
        raise ValidationError(f"Invalid {field_name}: {value!r} (expected YYYY-MM-DD)") from exc


def to_money(value: Any, *, field_name: str = "amount") -> Decimal:
    """Coerce ``value`` into :class:`~decimal.Decimal`, rejecting garbage."""

    if isinstance(value, bool) or value is None or value == "":
        raise ValidationError(f"Missing or invalid {field_name}: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid {field_name}: {value!r}") from exc
    if not amount.is_finite():
        raise ValidationError(f"Invalid {field_name}: {value!r}")
    return amount


def round_half_up(value: Decimal) -> Decimal:
    """Round to the nearest whole currency unit, halves rounding up."""

    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def require_positive_quantity(quantity: Any, *, error: type = ValidationError) -> int:
    """Validate that a quantity is a strictly positive whole number.

    Raises:
        ValidationError: If ``quantity`` is not an integer greater than zero.
            Callers may pass a narrower ``error`` subclass.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        log.error("Quantity validation failed: %s", quantity)
        raise error(f"Quantity must be a whole number greater than zero: {quantity!r}")
    return quantity


def require_nonnegative_money(amount: Decimal, *, field_name: str = "amount") -> Decimal:
    """Validate that a monetary value is nonnegative.

    Raises:
        ValidationError: If ``amount`` is less than zero.
    """
    if amount < Decimal("0"):
        log.error("Monetary value validation failed: %s=%s", field_name, amount)
        raise ValidationError(f"{field_name} must be zero or positive")
    return amount


def require_positive_money(amount: Decimal, *, field_name: str = "amount", error: type = ValidationError) -> Decimal:
    if amount <= Decimal("0"):
        log.error("Monetary value validation failed: %s=%s", field_name, amount)
        raise error(f"{field_name} must be greater than zero")
    return amount


def require_text(value: Optional[str], *, field_name: str, error: type = ValidationError) -> str:
    if value is None or not str(value).strip():
        log.error("Missing required field '%s'", field_name)
        raise error(f"Missing required field: {field_name}")
    return str(value).strip()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def get_settings(context: RuntimeContext) -> Dict[str, Any]:
    """Return the shop settings merged over :data:`DEFAULT_SETTINGS`."""

    merged = dict(DEFAULT_SETTINGS)
    merged.update(_read_collection(context, SETTINGS))
    return merged


def update_settings(context: RuntimeContext, **values: Any) -> Dict[str, Any]:
    """Overwrite selected shop settings and persist them.

    Raises:
        ValidationError: If ``defaultGstPercent`` or ``lowStockThreshold`` is
            negative or not a number.
    """

    if "defaultGstPercent" in values:
        rate = to_money(values["defaultGstPercent"], field_name="defaultGstPercent")
        values["defaultGstPercent"] = require_nonnegative_money(rate, field_name="defaultGstPercent")
    if "lowStockThreshold" in values:
        threshold = to_money(values["lowStockThreshold"], field_name="lowStockThreshold")
        values["lowStockThreshold"] = int(require_nonnegative_money(threshold, field_name="lowStockThreshold"))

    with ledger_transaction(context) as transaction:
        settings = transaction.collection(SETTINGS)
        settings.update(values)
    log.info("Updated settings: %s", ", ".join(sorted(values)))
    return get_settings(context)


def default_gst_rate(context: RuntimeContext) -> Decimal:
    raw = get_settings(context).get("defaultGstPercent")
    return data_manager.to_decimal(raw)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def list_products(context: RuntimeContext) -> List[data_manager.ProductRow]:
    """Return a copy of the catalog in sheet order."""

    return list(_read_collection(context, PRODUCTS))


def get_product(context: RuntimeContext, product_id: str) -> data_manager.ProductRow:
    """Resolve a product record by its identifier.

    Raises:
        NotFound: If ``product_id`` is absent from the catalog.
    """
    try:
        return _products_by_id(context)[product_id]
    except KeyError as exc:
        log.warning("Product lookup failed for id '%s'", product_id)
        raise NotFound(f"Unknown product id: {product_id}") from exc


def stock_status(product: data_manager.ProductRow, threshold: int) -> StockStatus:
    """Classify live stock; zero or negative stock both read as out of stock."""

    if product.stock <= 0:
        return StockStatus.OUT
    if product.stock <= threshold:
        return StockStatus.LOW
    return StockStatus.OK


def low_stock_threshold(context: RuntimeContext) -> int:
    return data_manager.to_int(get_settings(context).get("lowStockThreshold"))


def list_products_by_status(
    context: RuntimeContext,
    status: StockStatus,
    *,
    threshold: Optional[int] = None,
) -> List[data_manager.ProductRow]:
    """Filter the catalog by :class:`StockStatus`.

    ``threshold`` defaults to the ``lowStockThreshold`` setting.
    """

    if threshold is None:
        threshold = low_stock_threshold(context)
    return [product for product in list_products(context) if stock_status(product, threshold) is status]


def list_low_stock(context: RuntimeContext, threshold: Optional[int] = None) -> List[data_manager.ProductRow]:
    """Return products that are low or out of stock, lowest stock first."""

    low = list_products_by_status(context, StockStatus.LOW, threshold=threshold)
    out = list_products_by_status(context, StockStatus.OUT, threshold=threshold)
    return sorted(out + low, key=lambda product: product.stock)


def add_product(
    context: RuntimeContext,
    *,
    name: str,
    category: str,
    purchase_price: Any,
    sales_price: Any,
    initial_stock: int = 0,
    unit: Optional[str] = None,
    product_id: Optional[str] = None,
) -> data_manager.ProductRow:
    """Create a catalog entry.

    ``initial_stock`` seeds the product's stock; every later change goes
    through :func:`adjust_stock`.

    Raises:
        ValidationError: On blank name or category, negative prices, negative
            initial stock, or a duplicate ``product_id``.
    """

    name = require_text(name, field_name="name")
    category = require_text(category, field_name="category")
    purchase = require_nonnegative_money(to_money(purchase_price, field_name="purchase_price"), field_name="purchase_price")
    sales = require_nonnegative_money(to_money(sales_price, field_name="sales_price"), field_name="sales_price")
    if isinstance(initial_stock, bool) or not isinstance(initial_stock, int) or initial_stock < 0:
        raise ValidationError(f"Initial stock must be a whole number >= 0: {initial_stock!r}")

    with ledger_transaction(context) as transaction:
        products = transaction.collection(PRODUCTS)
        new_id = product_id or generate_id()
        if _index_of(products, "product_id", new_id) is not None:
            raise ValidationError(f"Product id already exists: {new_id}")
        product = data_manager.ProductRow(
            product_id=new_id,
            name=name,
            category=category,
            unit=(unit or "").strip() or context.settings.default_unit,
            purchase_price=purchase,
            sales_price=sales,
            stock=initial_stock,
        )
        products.append(product)
    log.info("Added product '%s' (%s) with stock %d", product.name, product.product_id, product.stock)
    return product


def update_product(
    context: RuntimeContext,
    product_id: str,
    *,
    name: Optional[str] = None,
    category: Optional[str] = None,
    unit: Optional[str] = None,
    purchase_price: Any = None,
    sales_price: Any = None,
) -> data_manager.ProductRow:
    """Edit descriptive fields and current prices of a product.

    Stock is deliberately absent from the signature. Past sales keep their
    snapshot prices; only future checkouts and report profit see the change.

    Raises:
        NotFound: If ``product_id`` is unknown.
        ValidationError: On blank text fields or negative prices.
    """

    changes: Dict[str, Any] = {}
    if name is not None:
        changes["name"] = require_text(name, field_name="name")
    if category is not None:
        changes["category"] = require_text(category, field_name="category")
    if unit is not None:
        changes["unit"] = require_text(unit, field_name="unit")
    if purchase_price is not None:
        changes["purchase_price"] = require_nonnegative_money(
            to_money(purchase_price, field_name="purchase_price"), field_name="purchase_price"
        )
    if sales_price is not None:
        changes["sales_price"] = require_nonnegative_money(
            to_money(sales_price, field_name="sales_price"), field_name="sales_price"
        )

    with ledger_transaction(context) as transaction:
        updated = _replace_product(transaction, product_id, **changes)
    log.info("Updated product '%s' fields: %s", product_id, ", ".join(sorted(changes)) or "none")
    return updated


def delete_product(context: RuntimeContext, product_id: str) -> data_manager.ProductRow:
    """Remove a catalog row; sales and purchases keep their own item snapshots.

    Raises:
        NotFound: If ``product_id`` is unknown.
    """

    with ledger_transaction(context) as transaction:
        products = transaction.collection(PRODUCTS)
        index = _index_of(products, "product_id", product_id)
        if index is None:
            log.warning("Cannot delete unknown product '%s'", product_id)
            raise NotFound(f"Unknown product id: {product_id}")
        removed = products.pop(index)
    log.info("Deleted product '%s' (%s)", removed.name, removed.product_id)
    return removed


def list_categories(context: RuntimeContext) -> Dict[str, int]:
    """Map every category in use to the number of products filed under it."""

    counts: Dict[str, int] = {}
    for product in list_products(context):
        category = product.category or DEFAULT_CATEGORY
        counts[category] = counts.get(category, 0) + 1
    return counts


def rename_category(context: RuntimeContext, old_name: str, new_name: str) -> int:
    """Move every product of ``old_name`` to ``new_name``; returns the count."""

    old_name = require_text(old_name, field_name="old_name")
    new_name = require_text(new_name, field_name="new_name")
    return _recategorize(context, old_name, new_name)


def delete_category(context: RuntimeContext, name: str) -> int:
    """Drop a category, filing its products under ``Uncategorized``."""

    return _recategorize(context, require_text(name, field_name="name"), DEFAULT_CATEGORY)


def _recategorize(context: RuntimeContext, old_name: str, new_name: str) -> int:
    with ledger_transaction(context) as transaction:
        products = transaction.collection(PRODUCTS)
        moved = 0
        for index, product in enumerate(products):
            if product.category == old_name:
                products[index] = replace(product, category=new_name)
                moved += 1
    log.info("Moved %d products from category '%s' to '%s'", moved, old_name, new_name)
    return moved


def _replace_product(transaction: LedgerTransaction, product_id: str, **changes: Any) -> data_manager.ProductRow:
    if "stock" in changes:
        raise ValueError("Stock changes must go through adjust_stock")
    products = transaction.collection(PRODUCTS)
    index = _index_of(products, "product_id", product_id)
    if index is None:
        log.warning("Product lookup failed for id '%s'", product_id)
        raise NotFound(f"Unknown product id: {product_id}")
    products[index] = replace(products[index], **changes)
    return products[index]


# ---------------------------------------------------------------------------
# Inventory Stock Tracker
# ---------------------------------------------------------------------------


def adjust_stock(transaction: LedgerTransaction, product_id: str, delta: int) -> data_manager.ProductRow:
    """Stage ``stock += delta`` for ``product_id`` on ``transaction``.

    This is the only place product stock changes after creation. It does not
    refuse to go below zero: callers that decrement must check availability
    first.

    Raises:
        NotFound: If ``product_id`` is not in the catalog.
    """

    products = transaction.collection(PRODUCTS)
    index = _index_of(products, "product_id", product_id)
    if index is None:
        log.warning("Stock adjustment for unknown product '%s'", product_id)
        raise NotFound(f"Unknown product id: {product_id}")
    current = products[index]
    products[index] = replace(current, stock=current.stock + delta)
    log.debug("Staged stock change for '%s': %d -> %d", product_id, current.stock, current.stock + delta)
    return products[index]


def adjust(context: RuntimeContext, product_id: str, delta: int) -> data_manager.ProductRow:
    """Apply a signed stock delta and persist the catalog.

    Raises:
        ValidationError: If ``delta`` is not an integer.
        NotFound: If ``product_id`` is unknown.
        PersistenceError: If the workbook cannot be saved.
    """

    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError(f"Stock delta must be a whole number: {delta!r}")
    with ledger_transaction(context) as transaction:
        product = adjust_stock(transaction, product_id, delta)
    log.info("Adjusted stock for '%s' by %+d (now %d)", product_id, delta, product.stock)
    return product


# ---------------------------------------------------------------------------
# Sale Transaction Manager
# ---------------------------------------------------------------------------


def calculate_totals(cart: Sequence[CartLine], gst_rate_percent: Decimal) -> SaleTotals:
    """Compute subtotal, flat-rate tax, and the rounded grand total.

    Subtotal and tax keep full precision; only the total is rounded half-up to
    a whole unit.
    """

    subtotal = sum((line.price * line.qty for line in cart), Decimal("0"))
    tax = subtotal * gst_rate_percent / Decimal("100")
    return SaleTotals(subtotal=subtotal, tax=tax, total=round_half_up(subtotal + tax))


def last_bill_number(context: RuntimeContext) -> int:
    return data_manager.to_int(_read_collection(context, COUNTERS).get(LAST_BILL_COUNTER))


def next_bill_number(context: RuntimeContext) -> int:
    """Return the bill number the next fresh checkout would receive."""

    return last_bill_number(context) + 1


def list_sales(context: RuntimeContext) -> List[data_manager.SaleRow]:
    return list(_read_collection(context, SALES))


def get_sale(context: RuntimeContext, sale_id: str) -> data_manager.SaleRow:
    """Resolve a committed sale by id.

    Raises:
        NotFound: If no committed sale has ``sale_id``.
    """

    for sale in _read_collection(context, SALES):
        if sale.sale_id == sale_id:
            return sale
    log.warning("Sale lookup failed for id '%s'", sale_id)
    raise NotFound(f"Unknown sale id: {sale_id}")


def validate_cart(cart: Sequence[CartLine]) -> None:
    """Reject empty carts, non-positive quantities, and negative prices.

    Raises:
        ValidationError: On the first malformed line.
    """

    if not cart:
        log.error("Checkout attempted with an empty cart")
        raise ValidationError("Cart is empty")
    for line in cart:
        require_text(line.product_id, field_name="product_id")
        require_positive_quantity(line.qty)
        if not isinstance(line.price, Decimal):
            raise ValidationError(f"Price for '{line.name}' must be a Decimal")
        require_nonnegative_money(line.price, field_name="price")


def check_availability(products: Sequence[data_manager.ProductRow], cart: Sequence[CartLine]) -> None:
    """Compare requested quantities against live catalog stock.

    Quantities for the same product are summed across cart lines before the
    comparison.

    Raises:
        NotFound: If a cart line references a product missing from the catalog.
        InsufficientStock: If any product's requested total exceeds its stock.
    """

    by_id = {product.product_id: product for product in products}
    requested: Dict[str, int] = {}
    for line in cart:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.qty
    for product_id, qty in requested.items():
        product = by_id.get(product_id)
        if product is None:
            log.warning("Checkout references unknown product '%s'", product_id)
            raise NotFound(f"Unknown product id: {product_id}")
        if qty > product.stock:
            log.warning(
                "Insufficient stock for '%s': requested %d, available %d",
                product_id,
                qty,
                product.stock,
            )
            raise InsufficientStock(product_id, product.name, qty, product.stock)


def record_sale(context: RuntimeContext, command: CheckoutCommand) -> data_manager.SaleRow:
    """Validate a cart and commit it as a sale together with its stock movement.

    The workflow validates every line, checks the live catalog for enough
    stock, computes totals at the command's GST rate (or the shop default),
    allocates a bill number, appends the sale, and decrements stock through
    the Stock Tracker. All of it is persisted in one transaction; any failure
    leaves both the sales collection and the catalog untouched.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        command (CheckoutCommand): Cart plus payment details. A
            ``preserved_bill_no`` re-uses the number of a sale being edited.

    Returns:
        data_manager.SaleRow: The persisted sale with id, bill number, and
            timestamp assigned.

    Raises:
        ValidationError: On an empty cart, malformed line, or unsupported mode.
        NotFound: If a cart line references an unknown product.
        InsufficientStock: If any product lacks the requested quantity.
        PersistenceError: If the workbook cannot be saved.
    """

    with ledger_transaction(context) as transaction:
        sale = _commit_sale(transaction, command)
    log.info(
        "Recorded sale '%s' bill #%d (%d lines, total=%s, mode=%s)",
        sale.sale_id,
        sale.bill_no,
        len(sale.items),
        sale.total,
        sale.mode.value,
    )
    return sale


def _commit_sale(transaction: LedgerTransaction, command: CheckoutCommand) -> data_manager.SaleRow:
    context = transaction.context
    validate_cart(command.cart)
    if not isinstance(command.mode, PaymentMode):
        log.error("Unsupported payment mode provided: %s", command.mode)
        raise ValidationError(f"Unsupported payment mode: {command.mode}")

    check_availability(transaction.collection(PRODUCTS), command.cart)

    gst_rate = command.gst_rate_percent if command.gst_rate_percent is not None else default_gst_rate(context)
    gst_rate = to_money(gst_rate, field_name="gst_rate_percent")
    require_nonnegative_money(gst_rate, field_name="gst_rate_percent")
    totals = calculate_totals(command.cart, gst_rate)

    counters = transaction.collection(COUNTERS)
    last_issued = data_manager.to_int(counters.get(LAST_BILL_COUNTER))
    if command.preserved_bill_no is not None:
        bill_no = require_positive_quantity(command.preserved_bill_no)
    else:
        bill_no = last_issued + 1
    # ratchet: an edit carrying an older number never rewinds the counter
    if bill_no > last_issued:
        counters[LAST_BILL_COUNTER] = bill_no

    timestamp = _resolve_timestamp(command.timestamp)
    sale = data_manager.SaleRow(
        sale_id=generate_id(),
        bill_no=bill_no,
        timestamp_iso=format_timestamp(timestamp),
        items=tuple(
            data_manager.SaleItem(
                product_id=line.product_id,
                name=line.name,
                unit=line.unit,
                price=line.price,
                qty=line.qty,
            )
            for line in command.cart
        ),
        subtotal=totals.subtotal,
        tax=totals.tax,
        total=totals.total,
        mode=command.mode,
        customer=(command.customer or "").strip() or context.settings.default_customer,
        staff_id=command.staff_id or context.settings.default_staff_id,
    )
    transaction.collection(SALES).append(sale)
    for line in command.cart:
        adjust_stock(transaction, line.product_id, -line.qty)
    return sale


def reverse_sale(context: RuntimeContext, sale_id: str) -> data_manager.SaleRow:
    """Remove a committed sale and return its quantities to stock.

    Used both for a terminal delete and as the entry step of an edit (see
    :func:`begin_sale_edit`). The removed bill number is never handed out
    again by the counter.

    Raises:
        NotFound: If ``sale_id`` does not identify a committed sale.
        PersistenceError: If the workbook cannot be saved.
    """

    with ledger_transaction(context) as transaction:
        sale = _reverse_sale(transaction, sale_id)
    log.info("Reversed sale '%s' bill #%d and restored stock", sale.sale_id, sale.bill_no)
    return sale


def _reverse_sale(transaction: LedgerTransaction, sale_id: str) -> data_manager.SaleRow:
    sales = transaction.collection(SALES)
    index = _index_of(sales, "sale_id", sale_id)
    if index is None:
        log.warning("Sale lookup failed for id '%s'", sale_id)
        raise NotFound(f"Unknown sale id: {sale_id}")
    sale = sales.pop(index)

    known = {product.product_id for product in transaction.collection(PRODUCTS)}
    for item in sale.items:
        if item.product_id not in known:
            log.warning(
                "Product '%s' from bill #%d is no longer in the catalog; stock not restored",
                item.product_id,
                sale.bill_no,
            )
            continue
        adjust_stock(transaction, item.product_id, item.qty)
    return sale


def begin_sale_edit(context: RuntimeContext, sale_id: str) -> SaleDraft:
    """Reverse a sale and hand its lines back as a draft cart.

    The draft keeps the original snapshot prices and carries the bill number
    so the next :func:`record_sale` can pass it as ``preserved_bill_no``.
    """

    sale = reverse_sale(context, sale_id)
    live = _products_by_id(context)
    cart = tuple(
        CartLine(
            product_id=item.product_id,
            name=item.name,
            unit=item.unit,
            price=item.price,
            qty=item.qty,
            stock=live[item.product_id].stock if item.product_id in live else None,
        )
        for item in sale.items
    )
    return SaleDraft(cart=cart, preserved_bill_no=sale.bill_no, mode=sale.mode, customer=sale.customer)


def replace_sale(
    context: RuntimeContext,
    sale_id: str,
    cart: Sequence[CartLine],
    *,
    mode: Optional[PaymentMode] = None,
    customer: Optional[str] = None,
    gst_rate_percent: Optional[Decimal] = None,
    staff_id: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> data_manager.SaleRow:
    """Reverse ``sale_id`` and recommit ``cart`` under its bill number atomically.

    If the new cart fails validation or availability, the original sale stays
    committed exactly as it was.
    """

    with ledger_transaction(context) as transaction:
        original = _reverse_sale(transaction, sale_id)
        command = CheckoutCommand(
            cart=cart,
            mode=mode or original.mode,
            customer=customer if customer is not None else original.customer,
            gst_rate_percent=gst_rate_percent,
            staff_id=staff_id or original.staff_id,
            preserved_bill_no=original.bill_no,
            timestamp=timestamp,
        )
        sale = _commit_sale(transaction, command)
    log.info("Replaced sale '%s' with '%s' under bill #%d", original.sale_id, sale.sale_id, sale.bill_no)
    return sale


# ---------------------------------------------------------------------------
# Purchase Transaction Manager
# ---------------------------------------------------------------------------


def list_purchases(context: RuntimeContext) -> List[data_manager.PurchaseRow]:
    return list(_read_collection(context, PURCHASES))


def record_purchase(context: RuntimeContext, command: PurchaseCommand) -> data_manager.PurchaseRow:
    """Validate and commit a supplier purchase with its stock and cost changes.

    Each line raises the product's stock by ``quantity`` and overwrites its
    current purchase price (last price wins). Purchases are append-only.

    Raises:
        InvalidPurchase: If there are no items, a quantity or price is not
            positive, or supplier/date are missing.
        NotFound: If a line references an unknown product.
        PersistenceError: If the workbook cannot be saved.
    """

    supplier = require_text(command.supplier, field_name="supplier", error=InvalidPurchase)
    try:
        purchase_date = normalize_date(command.date)
    except ValidationError as exc:
        raise InvalidPurchase(str(exc)) from exc
    if not command.items:
        log.error("Purchase from '%s' has no items", supplier)
        raise InvalidPurchase("A purchase needs at least one item")
    for line in command.items:
        require_positive_quantity(line.quantity, error=InvalidPurchase)
        price = line.purchase_price
        if not isinstance(price, Decimal):
            raise InvalidPurchase(f"Purchase price must be a Decimal: {price!r}")
        require_positive_money(price, field_name="purchase_price", error=InvalidPurchase)

    timestamp = _resolve_timestamp(command.timestamp)
    with ledger_transaction(context) as transaction:
        items = []
        for line in command.items:
            product = adjust_stock(transaction, line.product_id, line.quantity)
            _replace_product(transaction, line.product_id, purchase_price=line.purchase_price)
            items.append(
                data_manager.PurchaseItem(
                    product_id=line.product_id,
                    product_name=product.name,
                    quantity=line.quantity,
                    purchase_price=line.purchase_price,
                )
            )
        purchase = data_manager.PurchaseRow(
            purchase_id=generate_id(),
            date=purchase_date,
            supplier=supplier,
            items=tuple(items),
            total_amount=sum((item.quantity * item.purchase_price for item in items), Decimal("0")),
            notes=(command.notes or "").strip() or None,
            timestamp_iso=format_timestamp(timestamp),
        )
        transaction.collection(PURCHASES).append(purchase)
    log.info(
        "Recorded purchase '%s' from '%s' (%d lines, total=%s)",
        purchase.purchase_id,
        supplier,
        len(purchase.items),
        purchase.total_amount,
    )
    return purchase


# ---------------------------------------------------------------------------
# Expenses and daily logs
# ---------------------------------------------------------------------------


def list_expenses(context: RuntimeContext) -> List[data_manager.ExpenseRow]:
    return list(_read_collection(context, EXPENSES))


def record_expense(
    context: RuntimeContext,
    *,
    date: Union[str, date],
    description: str,
    amount: Any,
    category: str = "Other",
    timestamp: Optional[datetime] = None,
) -> data_manager.ExpenseRow:
    """Append an operating expense; expenses never touch stock.

    Raises:
        ValidationError: On a missing date or description or a non-positive
            amount.
    """

    expense = data_manager.ExpenseRow(
        expense_id=generate_id(),
        date=normalize_date(date),
        description=require_text(description, field_name="description"),
        category=(category or "").strip() or "Other",
        amount=require_positive_money(to_money(amount)),
        timestamp_iso=format_timestamp(_resolve_timestamp(timestamp)),
    )
    with ledger_transaction(context) as transaction:
        transaction.collection(EXPENSES).append(expense)
    log.info("Recorded expense '%s' on %s (amount=%s)", expense.description, expense.date, expense.amount)
    return expense


def get_daily_log(context: RuntimeContext, day: Union[str, date]) -> Optional[data_manager.DailyLogRow]:
    key = normalize_date(day)
    for entry in _read_collection(context, DAILY_LOGS):
        if entry.date == key:
            return entry
    return None


def set_opening_balance(
    context: RuntimeContext,
    day: Union[str, date],
    amount: Any,
    *,
    timestamp: Optional[datetime] = None,
) -> data_manager.DailyLogRow:
    """Upsert the opening cash balance for ``day``.

    Raises:
        ValidationError: If ``day`` is malformed or ``amount`` is negative.
    """

    entry = data_manager.DailyLogRow(
        date=normalize_date(day),
        opening_balance=require_nonnegative_money(to_money(amount), field_name="opening_balance"),
        updated_at=format_timestamp(_resolve_timestamp(timestamp)),
    )
    with ledger_transaction(context) as transaction:
        logs = transaction.collection(DAILY_LOGS)
        index = _index_of(logs, "date", entry.date)
        if index is None:
            logs.append(entry)
        else:
            logs[index] = entry
    log.info("Set opening balance for %s to %s", entry.date, entry.opening_balance)
    return entry
