"""Tests for staff maintenance, attendance, and pro-rated salary."""

from __future__ import annotations

from decimal import Decimal

import pytest

from pos_ledger import core_logic, data_manager, payroll
from pos_ledger.constants import AttendanceStatus, FinancialRecordType


def _staff(salary: str, *records: tuple[str, AttendanceStatus]) -> data_manager.StaffRow:
    return data_manager.StaffRow(
        staff_id="S1",
        name="Asha",
        role="Baker",
        salary=Decimal(salary),
        employed=True,
        attendance_records=tuple(data_manager.AttendanceRecord(day, status) for day, status in records),
    )


def _april(present: int, halfdays: int = 0, absent: int = 0) -> list[tuple[str, AttendanceStatus]]:
    statuses = (
        [AttendanceStatus.PRESENT] * present
        + [AttendanceStatus.HALFDAY] * halfdays
        + [AttendanceStatus.ABSENT] * absent
    )
    return [(f"2025-04-{day:02d}", status) for day, status in enumerate(statuses, start=1)]


def test_payable_salary_pro_rates_by_attendance():
    """22 full days and one half day in a 30-day month earn 22.5/30 of 9000."""

    staff = _staff("9000", *_april(present=22, halfdays=1, absent=2))

    payable = payroll.payable_salary(staff, 4, 2025)

    assert payable.days_present == Decimal("22.5")
    assert payable.days_in_month == 30
    assert payable.daily_rate == Decimal("300")
    assert payable.amount == Decimal("6750")


def test_payable_salary_uses_leap_february():
    staff = _staff("2900", ("2024-02-29", AttendanceStatus.PRESENT))

    payable = payroll.payable_salary(staff, 2, 2024)

    assert payable.days_in_month == 29
    assert payable.amount == Decimal("100")


def test_payable_salary_rounds_half_up():
    # 1000 * 0.5 / 31 = 16.13; 62 * 0.5 / 31 = 1.0
    staff = _staff("1000", ("2025-01-01", AttendanceStatus.HALFDAY))
    assert payroll.payable_salary(staff, 1, 2025).amount == Decimal("16")

    staff = _staff("62", ("2025-01-01", AttendanceStatus.HALFDAY))
    assert payroll.payable_salary(staff, 1, 2025).amount == Decimal("1")


def test_payable_salary_ignores_other_months():
    staff = _staff(
        "3000",
        ("2025-03-31", AttendanceStatus.PRESENT),
        ("2025-04-01", AttendanceStatus.PRESENT),
        ("2026-04-02", AttendanceStatus.PRESENT),
    )
    assert payroll.monthly_attendance(staff, 4, 2025) == Decimal("1")


def test_zero_salary_reports_attendance_but_owes_nothing():
    staff = _staff("0", *_april(present=3))

    payable = payroll.payable_salary(staff, 4, 2025)

    assert payable.amount == Decimal("0")
    assert payable.daily_rate == Decimal("0")
    assert payable.days_present == Decimal("3")


@pytest.mark.parametrize("month", [0, 13, -1])
def test_payable_salary_rejects_invalid_month(month):
    with pytest.raises(core_logic.ValidationError):
        payroll.payable_salary(_staff("1000"), month, 2025)


def test_add_staff_and_duplicate_id(runtime_context):
    member = payroll.add_staff(runtime_context, name="Ravi", salary="8000")

    assert member.staff_id.startswith("_")
    assert payroll.get_staff(runtime_context, member.staff_id) == member

    with pytest.raises(core_logic.ValidationError):
        payroll.add_staff(runtime_context, staff_id=member.staff_id, name="Other")


def test_default_staff_created_with_workbook(runtime_context):
    default = payroll.get_staff(runtime_context, runtime_context.settings.default_staff_id)
    assert default.employed is True


def test_list_staff_can_exclude_former_members(runtime_context, staff_member):
    payroll.update_staff(runtime_context, staff_member.staff_id, employed=False)

    current = payroll.list_staff(runtime_context, include_former=False)

    assert staff_member.staff_id not in {member.staff_id for member in current}
    assert staff_member.staff_id in {member.staff_id for member in payroll.list_staff(runtime_context)}


def test_delete_staff_unknown_raises(runtime_context):
    with pytest.raises(core_logic.NotFound):
        payroll.delete_staff(runtime_context, "S-NOPE")


def test_record_attendance_upserts_by_date(runtime_context, staff_member):
    payroll.record_attendance(runtime_context, staff_member.staff_id, "2025-04-01", AttendanceStatus.PRESENT)
    payroll.record_attendance(runtime_context, staff_member.staff_id, "2025-04-02", "absent")
    member = payroll.record_attendance(runtime_context, staff_member.staff_id, "2025-04-01", "halfday")

    assert [(entry.date, entry.status) for entry in member.attendance_records] == [
        ("2025-04-01", AttendanceStatus.HALFDAY),
        ("2025-04-02", AttendanceStatus.ABSENT),
    ]
    reloaded = payroll.get_staff(core_logic.refresh_context(runtime_context), staff_member.staff_id)
    assert reloaded.attendance_records == member.attendance_records


def test_record_attendance_rejects_unknown_status(runtime_context, staff_member):
    with pytest.raises(core_logic.ValidationError):
        payroll.record_attendance(runtime_context, staff_member.staff_id, "2025-04-01", "late")


def test_record_attendance_unknown_staff(runtime_context):
    with pytest.raises(core_logic.NotFound):
        payroll.record_attendance(runtime_context, "S-NOPE", "2025-04-01", AttendanceStatus.PRESENT)


def test_record_salary_payment_upserts_by_period(runtime_context, staff_member):
    payroll.record_salary_payment(runtime_context, staff_member.staff_id, 4, 2025, "6000", paid_date="2025-05-01")
    payroll.record_salary_payment(runtime_context, staff_member.staff_id, 4, 2025, "6750", paid_date="2025-05-02")

    payments = payroll.get_staff(runtime_context, staff_member.staff_id).salary_payments

    assert len(payments) == 1
    assert payments[0].amount == Decimal("6750")
    assert payments[0].paid is True
    assert payments[0].paid_date == "2025-05-02"


def test_record_salary_payment_validates(runtime_context, staff_member):
    with pytest.raises(core_logic.ValidationError):
        payroll.record_salary_payment(runtime_context, staff_member.staff_id, 13, 2025, "100")
    with pytest.raises(core_logic.ValidationError):
        payroll.record_salary_payment(runtime_context, staff_member.staff_id, 4, 2025, "0")


def test_salary_status_reflects_payment(runtime_context, staff_member):
    payroll.record_attendance(runtime_context, staff_member.staff_id, "2025-04-01", AttendanceStatus.PRESENT)
    member = payroll.get_staff(runtime_context, staff_member.staff_id)

    before = payroll.salary_status(member, 4, 2025)
    assert before.paid is False
    assert before.payment is None
    assert before.payable.amount == Decimal("300")

    payroll.record_salary_payment(runtime_context, staff_member.staff_id, 4, 2025, before.payable.amount)
    after = payroll.salary_status(payroll.get_staff(runtime_context, staff_member.staff_id), 4, 2025)
    assert after.paid is True
    assert after.payment.amount == Decimal("300")


def test_financial_records_are_append_only_and_do_not_change_salary(runtime_context, staff_member):
    payroll.record_financial_transaction(
        runtime_context, staff_member.staff_id, FinancialRecordType.ADVANCE, "500", "2025-04-03"
    )
    payroll.record_financial_transaction(
        runtime_context, staff_member.staff_id, "bonus", "500", "2025-04-03", notes="festival"
    )

    member = payroll.get_staff(runtime_context, staff_member.staff_id)

    assert [record.record_type for record in member.financial_records] == [
        FinancialRecordType.ADVANCE,
        FinancialRecordType.BONUS,
    ]
    assert member.financial_records[1].notes == "festival"
    assert payroll.payable_salary(member, 4, 2025).amount == Decimal("0")


def test_financial_record_rejects_unknown_type(runtime_context, staff_member):
    with pytest.raises(core_logic.ValidationError):
        payroll.record_financial_transaction(runtime_context, staff_member.staff_id, "loan", "10", "2025-04-03")
