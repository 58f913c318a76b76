"""Enumerations shared across the POS ledger modules.

Centralises domain constants so that the data access layer (DAL), business
logic layer (BLL), reporting, and the CLI rely on a single source of truth
for sheet names, payment channels, and attendance statuses.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

DEFAULT_UNIT = "pcs"
DEFAULT_CUSTOMER = "Guest"
DEFAULT_CATEGORY = "Uncategorized"
DEFAULT_LOW_STOCK_THRESHOLD = 10

# Key under which the last issued bill number lives in the Counters sheet.
LAST_BILL_COUNTER = "LastBillNumber"

# Shop settings seeded into a fresh workbook; keys match the Settings sheet.
DEFAULT_SETTINGS = {
    "shopName": "My Shop",
    "address": "",
    "phone": "",
    "gstNo": "",
    "defaultGstPercent": 0,
    "lowStockThreshold": DEFAULT_LOW_STOCK_THRESHOLD,
}


class PaymentMode(str, Enum):
    """Enumerate the payment channels a sale may be settled through."""

    CASH = "cash"
    UPI = "upi"


class AttendanceStatus(str, Enum):
    """Closed set of attendance states recorded per staff member and day."""

    PRESENT = "present"
    HALFDAY = "halfday"
    ABSENT = "absent"


class FinancialRecordType(str, Enum):
    """Informational staff ledger entry kinds."""

    BONUS = "bonus"
    ADVANCE = "advance"
    RETURN = "return"


class StockStatus(str, Enum):
    """Display bucket for a product's live stock level."""

    OK = "ok"
    LOW = "low"
    OUT = "out"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    SETTINGS = "Settings"
    COUNTERS = "Counters"
    PRODUCTS = "Products"
    STAFF = "Staff"
    SALES = "Sales"
    PURCHASES = "Purchases"
    EXPENSES = "Expenses"
    DAILY_LOGS = "DailyLogs"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DEFAULT_UNIT",
    "DEFAULT_CUSTOMER",
    "DEFAULT_CATEGORY",
    "DEFAULT_LOW_STOCK_THRESHOLD",
    "LAST_BILL_COUNTER",
    "DEFAULT_SETTINGS",
    "PaymentMode",
    "AttendanceStatus",
    "FinancialRecordType",
    "StockStatus",
    "SheetName",
]
