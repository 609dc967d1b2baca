"""Balance ledger tests — lazy initialization, adjustments, pending
reconciliation, policy enforcement and the derived ``available`` figure.

Tests run against SQLite via the shared conftest.py fixtures.
"""

from __future__ import annotations

import uuid
from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.balances.models import LeaveBalance, LeaveBalanceAdjustment
from leaveflow.balances.service import BalanceLedger
from leaveflow.common.audit import AuditTrail
from leaveflow.common.constants import (
    AdjustmentType,
    AuditAction,
    BalancePolicy,
    LeavePriority,
    LeaveStatus,
    LeaveType,
    UserRole,
)
from leaveflow.common.exceptions import (
    ForbiddenException,
    InsufficientBalanceException,
    NotFoundException,
    ValidationException,
)
from leaveflow.config import settings
from leaveflow.leave.models import LeaveRequest
from tests.conftest import ctx_for, make_employee


# ═════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════


def _by_type(rows: list[LeaveBalance]) -> dict[LeaveType, LeaveBalance]:
    return {b.leave_type: b for b in rows}


def _assert_formula(balance: LeaveBalance) -> None:
    assert balance.available == (
        balance.total_allowed + balance.carried_forward - balance.used - balance.pending
    )


async def _seed_request(
    db: AsyncSession,
    employee_id: uuid.UUID,
    *,
    start: date,
    end: date,
    leave_type: LeaveType = LeaveType.annual,
    status: LeaveStatus = LeaveStatus.pending,
) -> LeaveRequest:
    req = LeaveRequest(
        id=uuid.uuid4(),
        employee_id=employee_id,
        leave_type=leave_type,
        priority=LeavePriority.medium,
        start_date=start,
        end_date=end,
        total_days=(end - start).days + 1,
        reason="Seeded request",
        status=status,
        current_approval_level=1,
    )
    db.add(req)
    await db.flush()
    return req


# ═════════════════════════════════════════════════════════════════════
# 1. LeaveBalance model (pure logic, no DB)
# ═════════════════════════════════════════════════════════════════════


class TestLeaveBalanceModel:

    def test_new_row_available_equals_allowance(self):
        bal = LeaveBalance.new(uuid.uuid4(), 2024, LeaveType.annual, total_allowed=21)
        assert bal.used == 0
        assert bal.pending == 0
        assert bal.carried_forward == 0
        assert bal.available == 21

    def test_apply_deltas_recomputes_available(self):
        bal = LeaveBalance.new(uuid.uuid4(), 2024, LeaveType.annual, total_allowed=21)
        bal.apply(pending_delta=5)
        assert bal.available == 16
        bal.apply(used_delta=5, pending_delta=-5)
        assert bal.used == 5
        assert bal.pending == 0
        assert bal.available == 16
        _assert_formula(bal)

    def test_pending_never_negative(self):
        bal = LeaveBalance.new(uuid.uuid4(), 2024, LeaveType.sick, total_allowed=12)
        bal.apply(pending_delta=-3)
        assert bal.pending == 0
        assert bal.available == 12

    def test_available_may_go_negative(self):
        bal = LeaveBalance.new(uuid.uuid4(), 2024, LeaveType.emergency)
        bal.apply(used_delta=2)
        assert bal.available == -2

    def test_carry_forward_counts_towards_available(self):
        bal = LeaveBalance.new(
            uuid.uuid4(), 2024, LeaveType.casual, total_allowed=12, carried_forward=3,
        )
        assert bal.available == 15


# ═════════════════════════════════════════════════════════════════════
# 2. Lazy initialization
# ═════════════════════════════════════════════════════════════════════


class TestInitialization:

    async def test_creates_default_rows(self, db: AsyncSession, employee):
        rows = await BalanceLedger.get_or_initialize(db, employee.id, 2024)

        by_type = _by_type(rows)
        assert set(by_type) == {
            LeaveType.casual, LeaveType.sick, LeaveType.annual,
            LeaveType.maternity, LeaveType.paternity,
        }
        assert by_type[LeaveType.annual].total_allowed == 21
        assert by_type[LeaveType.maternity].total_allowed == 180
        for bal in rows:
            assert bal.used == 0
            assert bal.pending == 0
            assert bal.carried_forward == 0
            assert bal.available == bal.total_allowed
            assert bal.version == 1

    async def test_initializes_at_most_once(self, db: AsyncSession, employee):
        first = await BalanceLedger.get_or_initialize(db, employee.id, 2024)
        second = await BalanceLedger.get_or_initialize(db, employee.id, 2024)

        assert {b.id for b in first} == {b.id for b in second}
        count = (await db.execute(
            select(func.count()).select_from(LeaveBalance).where(
                LeaveBalance.employee_id == employee.id,
            )
        )).scalar_one()
        assert count == 5

        audits = (await db.execute(
            select(AuditTrail).where(
                AuditTrail.action == AuditAction.balance_initialized.value,
            )
        )).scalars().all()
        assert len(audits) == 1

    async def test_years_are_independent(self, db: AsyncSession, employee):
        await BalanceLedger.get_or_initialize(db, employee.id, 2024)
        rows_2025 = await BalanceLedger.get_or_initialize(db, employee.id, 2025)
        assert len(rows_2025) == 5
        assert all(b.year == 2025 for b in rows_2025)

    async def test_custom_allowances_respected(self, db: AsyncSession, employee, monkeypatch):
        monkeypatch.setattr(
            settings, "LEAVE_DEFAULT_ALLOWANCES", '{"ANNUAL": 25, "BOGUS": 3}',
        )
        rows = await BalanceLedger.get_or_initialize(db, employee.id, 2024)
        assert len(rows) == 1
        assert rows[0].leave_type == LeaveType.annual
        assert rows[0].total_allowed == 25

    async def test_unknown_employee(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await BalanceLedger.get_or_initialize(db, uuid.uuid4(), 2024)

    async def test_get_or_create_row_adds_zero_allowance_row(
        self, db: AsyncSession, employee,
    ):
        bal = await BalanceLedger.get_or_create_row(
            db, employee.id, 2024, LeaveType.unpaid,
        )
        assert bal.total_allowed == 0
        assert bal.available == 0
        # Defaults were initialized first
        rows = await BalanceLedger.get_or_initialize(db, employee.id, 2024)
        assert len(rows) == 6


# ═════════════════════════════════════════════════════════════════════
# 3. Manual adjustments
# ═════════════════════════════════════════════════════════════════════


class TestAdjust:

    async def test_add_raises_allowance(self, db: AsyncSession, employee, admin_ctx):
        bal = await BalanceLedger.adjust(
            db, employee.id, 2024, LeaveType.annual, AdjustmentType.add,
            3, "Long service bonus", admin_ctx.caller_id,
        )
        assert bal.total_allowed == 24
        assert bal.available == 24
        assert bal.version == 2
        _assert_formula(bal)

    async def test_deduct_consumes_days(self, db: AsyncSession, employee, admin_ctx):
        bal = await BalanceLedger.adjust(
            db, employee.id, 2024, LeaveType.casual, AdjustmentType.deduct,
            2, "Unrecorded absence", admin_ctx.caller_id,
        )
        assert bal.used == 2
        assert bal.available == 10
        _assert_formula(bal)

    async def test_set_replaces_allowance(self, db: AsyncSession, employee, admin_ctx):
        bal = await BalanceLedger.adjust(
            db, employee.id, 2024, LeaveType.sick, AdjustmentType.set,
            8, "Part-time contract", admin_ctx.caller_id,
        )
        assert bal.total_allowed == 8
        assert bal.available == 8

    async def test_carry_forward_replaces_figure(self, db: AsyncSession, employee, admin_ctx):
        await BalanceLedger.adjust(
            db, employee.id, 2024, LeaveType.annual, AdjustmentType.carry_forward,
            4, "From 2023", admin_ctx.caller_id,
        )
        bal = await BalanceLedger.adjust(
            db, employee.id, 2024, LeaveType.annual, AdjustmentType.carry_forward,
            2, "Corrected carry forward", admin_ctx.caller_id,
        )
        assert bal.carried_forward == 2
        assert bal.available == 23

    async def test_set_creates_missing_row(self, db: AsyncSession, employee, admin_ctx):
        bal = await BalanceLedger.adjust(
            db, employee.id, 2024, LeaveType.emergency, AdjustmentType.set,
            5, "Emergency allowance", admin_ctx.caller_id,
        )
        assert bal.leave_type == LeaveType.emergency
        assert bal.total_allowed == 5
        assert bal.available == 5

    async def test_add_on_missing_row_is_not_found(self, db: AsyncSession, employee, admin_ctx):
        with pytest.raises(NotFoundException):
            await BalanceLedger.adjust(
                db, employee.id, 2024, LeaveType.unpaid, AdjustmentType.add,
                1, "No such row", admin_ctx.caller_id,
            )

    async def test_deduct_on_missing_row_is_not_found(self, db: AsyncSession, employee, admin_ctx):
        with pytest.raises(NotFoundException):
            await BalanceLedger.adjust(
                db, employee.id, 2024, LeaveType.emergency, AdjustmentType.deduct,
                1, "No such row", admin_ctx.caller_id,
            )

    async def test_negative_days_rejected(self, db: AsyncSession, employee, admin_ctx):
        with pytest.raises(ValidationException):
            await BalanceLedger.adjust(
                db, employee.id, 2024, LeaveType.annual, AdjustmentType.add,
                -1, "Negative", admin_ctx.caller_id,
            )

    async def test_blank_reason_rejected(self, db: AsyncSession, employee, admin_ctx):
        with pytest.raises(ValidationException):
            await BalanceLedger.adjust(
                db, employee.id, 2024, LeaveType.annual, AdjustmentType.add,
                1, "   ", admin_ctx.caller_id,
            )

    async def test_every_adjustment_is_recorded(self, db: AsyncSession, employee, admin_ctx):
        await BalanceLedger.adjust(
            db, employee.id, 2024, LeaveType.annual, AdjustmentType.add,
            3, "First", admin_ctx.caller_id,
        )
        await BalanceLedger.adjust(
            db, employee.id, 2024, LeaveType.annual, AdjustmentType.deduct,
            1, "Second", admin_ctx.caller_id,
        )
        records = (await db.execute(
            select(LeaveBalanceAdjustment).where(
                LeaveBalanceAdjustment.employee_id == employee.id,
            )
        )).scalars().all()
        assert sorted(r.reason for r in records) == ["First", "Second"]
        assert all(r.adjusted_by == admin_ctx.caller_id for r in records)
        assert all(r.leave_request_id is None for r in records)

        audits = (await db.execute(
            select(AuditTrail).where(
                AuditTrail.action == AuditAction.balance_adjusted.value,
            )
        )).scalars().all()
        assert len(audits) == 2


# ═════════════════════════════════════════════════════════════════════
# 4. Adjustment history
# ═════════════════════════════════════════════════════════════════════


class TestListAdjustments:

    async def test_newest_first_and_filters(self, db: AsyncSession, employee, admin_ctx):
        for reason, leave_type in (
            ("one", LeaveType.annual),
            ("two", LeaveType.sick),
            ("three", LeaveType.annual),
        ):
            await BalanceLedger.adjust(
                db, employee.id, 2024, leave_type, AdjustmentType.add,
                1, reason, admin_ctx.caller_id,
            )

        history = await BalanceLedger.list_adjustments(db, admin_ctx, employee.id)
        assert {a.reason for a in history} == {"one", "two", "three"}
        stamps = [a.created_at for a in history]
        assert stamps == sorted(stamps, reverse=True)

        annual = await BalanceLedger.list_adjustments(
            db, admin_ctx, employee.id, leave_type=LeaveType.annual,
        )
        assert {a.reason for a in annual} == {"three", "one"}

        other_year = await BalanceLedger.list_adjustments(
            db, admin_ctx, employee.id, year=2025,
        )
        assert other_year == []

    async def test_employee_sees_own_history(self, db: AsyncSession, employee, employee_ctx):
        history = await BalanceLedger.list_adjustments(db, employee_ctx, employee.id)
        assert history == []

    async def test_other_employee_forbidden(self, db: AsyncSession, employee, branch):
        colleague = await make_employee(db, branch, first_name="Ravi")
        ctx = ctx_for(colleague.id, UserRole.employee, branch.id)
        with pytest.raises(ForbiddenException):
            await BalanceLedger.list_adjustments(db, ctx, employee.id)


# ═════════════════════════════════════════════════════════════════════
# 5. Scoped balance reads
# ═════════════════════════════════════════════════════════════════════


class TestGetBalances:

    async def test_self(self, db: AsyncSession, employee, employee_ctx):
        rows = await BalanceLedger.get_balances(db, employee_ctx, employee.id, 2024)
        assert len(rows) == 5

    async def test_branch_manager_of_same_branch(self, db: AsyncSession, employee, manager_ctx):
        rows = await BalanceLedger.get_balances(db, manager_ctx, employee.id, 2024)
        assert len(rows) == 5

    async def test_manager_of_other_branch_forbidden(
        self, db: AsyncSession, employee, other_manager_ctx,
    ):
        with pytest.raises(ForbiddenException):
            await BalanceLedger.get_balances(db, other_manager_ctx, employee.id, 2024)


# ═════════════════════════════════════════════════════════════════════
# 6. Pending maintenance and reconciliation
# ═════════════════════════════════════════════════════════════════════


class TestPending:

    async def test_reserve_and_release(self, db: AsyncSession, employee):
        bal = await BalanceLedger.reserve_pending(db, employee.id, 2024, LeaveType.sick, 3)
        assert bal.pending == 3
        assert bal.available == 9

        bal = await BalanceLedger.release_pending(db, employee.id, 2024, LeaveType.sick, 3)
        assert bal.pending == 0
        assert bal.available == 12

    async def test_recompute_rebuilds_from_requests(self, db: AsyncSession, employee, admin_ctx):
        await BalanceLedger.get_or_initialize(db, employee.id, 2024)
        await _seed_request(db, employee.id, start=date(2024, 3, 1), end=date(2024, 3, 3))
        await _seed_request(
            db, employee.id, start=date(2024, 4, 1), end=date(2024, 4, 2),
            status=LeaveStatus.primary_approved,
        )
        # Terminal or other-year requests do not count
        await _seed_request(
            db, employee.id, start=date(2024, 5, 1), end=date(2024, 5, 10),
            status=LeaveStatus.primary_rejected,
        )
        await _seed_request(
            db, employee.id, start=date(2024, 6, 1), end=date(2024, 6, 1),
            status=LeaveStatus.final_approved,
        )
        await _seed_request(db, employee.id, start=date(2025, 1, 5), end=date(2025, 1, 6))
        await _seed_request(
            db, employee.id, start=date(2024, 7, 1), end=date(2024, 7, 2),
            leave_type=LeaveType.emergency,
        )

        rows = await BalanceLedger.recompute_pending(
            db, employee.id, 2024, actor_id=admin_ctx.caller_id,
        )
        by_type = _by_type(rows)
        assert by_type[LeaveType.annual].pending == 5
        assert by_type[LeaveType.annual].available == 16
        assert by_type[LeaveType.sick].pending == 0
        # Missing row created for the emergency request
        assert by_type[LeaveType.emergency].pending == 2
        assert by_type[LeaveType.emergency].available == -2
        for bal in rows:
            _assert_formula(bal)

    async def test_recompute_clears_drift(self, db: AsyncSession, employee):
        bal = await BalanceLedger.reserve_pending(db, employee.id, 2024, LeaveType.casual, 4)
        assert bal.pending == 4

        rows = await BalanceLedger.recompute_pending(db, employee.id, 2024)
        casual = _by_type(rows)[LeaveType.casual]
        assert casual.pending == 0
        assert casual.available == 12


# ═════════════════════════════════════════════════════════════════════
# 7. Balance policy
# ═════════════════════════════════════════════════════════════════════


class TestBalancePolicy:

    def test_allow_is_default(self):
        bal = LeaveBalance.new(uuid.uuid4(), 2024, LeaveType.annual, total_allowed=1)
        BalanceLedger.ensure_sufficient(bal, 10)

    def test_reject_refuses_over_budget(self, monkeypatch):
        monkeypatch.setattr(settings, "LEAVE_BALANCE_POLICY", "reject")
        bal = LeaveBalance.new(uuid.uuid4(), 2024, LeaveType.annual, total_allowed=3)
        BalanceLedger.ensure_sufficient(bal, 3)
        with pytest.raises(InsufficientBalanceException) as exc_info:
            BalanceLedger.ensure_sufficient(bal, 4)
        assert isinstance(exc_info.value, ValidationException)
        assert exc_info.value.error_type == "insufficient-balance"

    def test_reject_counts_reserved_days(self, monkeypatch):
        monkeypatch.setattr(settings, "LEAVE_BALANCE_POLICY", "reject")
        bal = LeaveBalance.new(uuid.uuid4(), 2024, LeaveType.annual, total_allowed=5)
        bal.apply(pending_delta=5)
        BalanceLedger.ensure_sufficient(bal, 5, already_reserved=True)

    def test_unknown_policy_falls_back_to_allow(self, monkeypatch):
        monkeypatch.setattr(settings, "LEAVE_BALANCE_POLICY", "strict")
        assert BalanceLedger.balance_policy() is BalancePolicy.allow
