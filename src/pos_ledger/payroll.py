"""Staff maintenance and attendance-based salary calculation.

Payroll is independent of sales and purchases: it only reads and writes the
``Staff`` collection. Attendance, salary payments, and the informational
financial ledger are stored on the staff record itself and are upserted by
their natural keys.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional, Tuple, Union

from . import data_manager, log
from .constants import AttendanceStatus, FinancialRecordType
from .core_logic import (
    STAFF,
    LedgerTransaction,
    NotFound,
    RuntimeContext,
    ValidationError,
    _index_of,
    _read_collection,
    _resolve_timestamp,
    format_timestamp,
    generate_id,
    ledger_transaction,
    migrate_legacy_attendance,
    normalize_date,
    require_nonnegative_money,
    require_positive_money,
    require_text,
    round_half_up,
    to_money,
)


_ATTENDANCE_WEIGHTS = {
    AttendanceStatus.PRESENT: Decimal("1"),
    AttendanceStatus.HALFDAY: Decimal("0.5"),
    AttendanceStatus.ABSENT: Decimal("0"),
}


@dataclass(frozen=True)
class PayableSalary:
    amount: Decimal
    days_present: Decimal
    days_in_month: int
    daily_rate: Decimal


@dataclass(frozen=True)
class SalaryStatus:
    """Whether a staff member has a paid salary record for a period."""

    staff_id: str
    month: int
    year: int
    paid: bool
    payment: Optional[data_manager.SalaryPayment]
    payable: PayableSalary


def _require_period(month: int, year: int) -> None:
    if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
        raise ValidationError(f"Month must be between 1 and 12: {month!r}")
    if isinstance(year, bool) or not isinstance(year, int) or year < 1:
        raise ValidationError(f"Invalid year: {year!r}")


def monthly_attendance(staff: data_manager.StaffRow, month: int, year: int) -> Decimal:
    """Count attendance days for ``staff`` in the calendar month.

    ``present`` counts as a full day, ``halfday`` as half a day and anything
    else as zero, so the result moves in steps of 0.5.
    """

    _require_period(month, year)
    prefix = f"{year:04d}-{month:02d}-"
    days = Decimal("0")
    for record in staff.attendance_records:
        if record.date.startswith(prefix):
            days += _ATTENDANCE_WEIGHTS.get(record.status, Decimal("0"))
    return days


def payable_salary(staff: data_manager.StaffRow, month: int, year: int) -> PayableSalary:
    """Pro-rate the monthly salary by attendance.

    The daily rate divides the salary by the length of the target month, leap
    years included, and the payable amount is rounded half-up to a whole unit.
    A staff member without a salary is owed nothing, but the attendance figures
    are still reported.

    Args:
        staff (data_manager.StaffRow): Staff record carrying salary and
            attendance history.
        month (int): Calendar month, 1 to 12.
        year (int): Four-digit year.

    Returns:
        PayableSalary: Amount, days present, month length, and daily rate.

    Raises:
        ValidationError: If ``month`` or ``year`` is out of range.
    """

    days_present = monthly_attendance(staff, month, year)
    days_in_month = calendar.monthrange(year, month)[1]
    if not staff.salary or staff.salary <= Decimal("0"):
        return PayableSalary(
            amount=Decimal("0"),
            days_present=days_present,
            days_in_month=days_in_month,
            daily_rate=Decimal("0"),
        )

    daily_rate = staff.salary / Decimal(days_in_month)
    amount = round_half_up(staff.salary * days_present / Decimal(days_in_month))
    return PayableSalary(
        amount=amount,
        days_present=days_present,
        days_in_month=days_in_month,
        daily_rate=daily_rate,
    )


def salary_status(staff: data_manager.StaffRow, month: int, year: int) -> SalaryStatus:
    payable = payable_salary(staff, month, year)
    payment = next(
        (entry for entry in staff.salary_payments if entry.month == month and entry.year == year),
        None,
    )
    return SalaryStatus(
        staff_id=staff.staff_id,
        month=month,
        year=year,
        paid=bool(payment and payment.paid),
        payment=payment,
        payable=payable,
    )


# ---------------------------------------------------------------------------
# Staff maintenance
# ---------------------------------------------------------------------------


def list_staff(context: RuntimeContext, *, include_former: bool = True) -> List[data_manager.StaffRow]:
    staff = list(_read_collection(context, STAFF))
    if include_former:
        return staff
    return [member for member in staff if member.employed]


def get_staff(context: RuntimeContext, staff_id: str) -> data_manager.StaffRow:
    """Resolve a staff record by its identifier.

    Raises:
        NotFound: If ``staff_id`` is unknown.
    """

    for member in _read_collection(context, STAFF):
        if member.staff_id == staff_id:
            return member
    log.warning("Staff lookup failed for id '%s'", staff_id)
    raise NotFound(f"Unknown staff id: {staff_id}")


def add_staff(
    context: RuntimeContext,
    *,
    name: str,
    role: str = "",
    salary: Any = 0,
    employed: bool = True,
    staff_id: Optional[str] = None,
) -> data_manager.StaffRow:
    """Create a staff record with empty attendance and payment history.

    Raises:
        ValidationError: On a blank name, negative salary, or duplicate id.
    """

    member = data_manager.StaffRow(
        staff_id=staff_id or generate_id(),
        name=require_text(name, field_name="name"),
        role=(role or "").strip(),
        salary=require_nonnegative_money(to_money(salary, field_name="salary"), field_name="salary"),
        employed=bool(employed),
    )
    with ledger_transaction(context) as transaction:
        staff = transaction.collection(STAFF)
        if _index_of(staff, "staff_id", member.staff_id) is not None:
            raise ValidationError(f"Staff id already exists: {member.staff_id}")
        staff.append(member)
    log.info("Added staff member '%s' (%s)", member.name, member.staff_id)
    return member


def update_staff(
    context: RuntimeContext,
    staff_id: str,
    *,
    name: Optional[str] = None,
    role: Optional[str] = None,
    salary: Any = None,
    employed: Optional[bool] = None,
) -> data_manager.StaffRow:
    changes: dict = {}
    if name is not None:
        changes["name"] = require_text(name, field_name="name")
    if role is not None:
        changes["role"] = role.strip()
    if salary is not None:
        changes["salary"] = require_nonnegative_money(to_money(salary, field_name="salary"), field_name="salary")
    if employed is not None:
        changes["employed"] = bool(employed)

    with ledger_transaction(context) as transaction:
        member = _update_member(transaction, staff_id, **changes)
    log.info("Updated staff '%s' fields: %s", staff_id, ", ".join(sorted(changes)) or "none")
    return member


def delete_staff(context: RuntimeContext, staff_id: str) -> data_manager.StaffRow:
    """Remove a staff record along with its payroll history.

    Raises:
        NotFound: If ``staff_id`` is unknown.
    """

    with ledger_transaction(context) as transaction:
        staff = transaction.collection(STAFF)
        index = _index_of(staff, "staff_id", staff_id)
        if index is None:
            log.warning("Cannot delete unknown staff '%s'", staff_id)
            raise NotFound(f"Unknown staff id: {staff_id}")
        removed = staff.pop(index)
    log.info("Deleted staff member '%s' (%s)", removed.name, removed.staff_id)
    return removed


def _update_member(transaction: LedgerTransaction, staff_id: str, **changes: Any) -> data_manager.StaffRow:
    staff = transaction.collection(STAFF)
    index = _index_of(staff, "staff_id", staff_id)
    if index is None:
        log.warning("Staff lookup failed for id '%s'", staff_id)
        raise NotFound(f"Unknown staff id: {staff_id}")
    staff[index] = replace(staff[index], **changes)
    return staff[index]


def _upsert(records: Tuple[Any, ...], entry: Any, key) -> Tuple[Any, ...]:
    """Return ``records`` with ``entry`` replacing the record sharing its key."""

    target = key(entry)
    kept = [record for record in records if key(record) != target]
    if len(kept) == len(records):
        return records + (entry,)
    position = next(i for i, record in enumerate(records) if key(record) == target)
    kept.insert(position, entry)
    return tuple(kept)


# ---------------------------------------------------------------------------
# Attendance, payments, and the staff financial ledger
# ---------------------------------------------------------------------------


def record_attendance(
    context: RuntimeContext,
    staff_id: str,
    day: Union[str, date],
    status: AttendanceStatus,
) -> data_manager.StaffRow:
    """Upsert the attendance status for ``staff_id`` on ``day``.

    Saving twice for the same date overwrites the earlier status.

    Raises:
        ValidationError: If the date or status is invalid.
        NotFound: If ``staff_id`` is unknown.
    """

    try:
        status = AttendanceStatus(status)
    except ValueError as exc:
        raise ValidationError(f"Unsupported attendance status: {status!r}") from exc
    record = data_manager.AttendanceRecord(date=normalize_date(day), status=status)

    with ledger_transaction(context) as transaction:
        member = get_staff_in(transaction, staff_id)
        records = _upsert(member.attendance_records, record, key=lambda entry: entry.date)
        member = _update_member(transaction, staff_id, attendance_records=records)
    log.info("Recorded attendance for '%s' on %s: %s", staff_id, record.date, status.value)
    return member


def record_salary_payment(
    context: RuntimeContext,
    staff_id: str,
    month: int,
    year: int,
    amount: Any,
    paid_date: Union[str, date, None] = None,
) -> data_manager.SalaryPayment:
    """Mark a salary period as paid, upserting by ``(month, year)``.

    The amount is taken as given; admins may pay something other than the
    computed payable salary. ``paid_date`` defaults to today and decides which
    daily report counts the payment as a salary expense.

    Raises:
        ValidationError: On an invalid period, a non-positive amount, or a
            malformed date.
        NotFound: If ``staff_id`` is unknown.
    """

    _require_period(month, year)
    payment = data_manager.SalaryPayment(
        month=month,
        year=year,
        amount=require_positive_money(to_money(amount)),
        paid=True,
        paid_date=normalize_date(paid_date if paid_date is not None else datetime.now().date(), field_name="paid_date"),
    )

    with ledger_transaction(context) as transaction:
        member = get_staff_in(transaction, staff_id)
        payments = _upsert(member.salary_payments, payment, key=lambda entry: (entry.month, entry.year))
        _update_member(transaction, staff_id, salary_payments=payments)
    log.info(
        "Recorded salary payment for '%s' %02d/%d: amount=%s paid on %s",
        staff_id,
        month,
        year,
        payment.amount,
        payment.paid_date,
    )
    return payment


def record_financial_transaction(
    context: RuntimeContext,
    staff_id: str,
    record_type: FinancialRecordType,
    amount: Any,
    day: Union[str, date],
    notes: Optional[str] = None,
    *,
    timestamp: Optional[datetime] = None,
) -> data_manager.FinancialRecord:
    """Append a bonus, advance, or return to the staff member's ledger.

    These entries are informational only and never change payable salary.

    Raises:
        ValidationError: On an unsupported type, non-positive amount, or
            malformed date.
        NotFound: If ``staff_id`` is unknown.
    """

    try:
        record_type = FinancialRecordType(record_type)
    except ValueError as exc:
        raise ValidationError(f"Unsupported financial record type: {record_type!r}") from exc
    record = data_manager.FinancialRecord(
        record_id=generate_id(),
        record_type=record_type,
        amount=require_positive_money(to_money(amount)),
        date=normalize_date(day),
        notes=(notes or "").strip() or None,
        timestamp_iso=format_timestamp(_resolve_timestamp(timestamp)),
    )

    with ledger_transaction(context) as transaction:
        member = get_staff_in(transaction, staff_id)
        _update_member(transaction, staff_id, financial_records=member.financial_records + (record,))
    log.info("Recorded %s of %s for '%s' on %s", record_type.value, record.amount, staff_id, record.date)
    return record


def get_staff_in(transaction: LedgerTransaction, staff_id: str) -> data_manager.StaffRow:
    """Resolve ``staff_id`` against the transaction's staged staff collection."""

    staff = transaction.collection(STAFF)
    index = _index_of(staff, "staff_id", staff_id)
    if index is None:
        log.warning("Staff lookup failed for id '%s'", staff_id)
        raise NotFound(f"Unknown staff id: {staff_id}")
    return staff[index]


__all__ = [
    "PayableSalary",
    "SalaryStatus",
    "monthly_attendance",
    "payable_salary",
    "salary_status",
    "list_staff",
    "get_staff",
    "add_staff",
    "update_staff",
    "delete_staff",
    "record_attendance",
    "record_salary_payment",
    "record_financial_transaction",
    "migrate_legacy_attendance",
]
