"""
Tests for PayrollSnapshotter: monthly generation, idempotency, consumption
of bills and direct deductions, snapshot immutability and the payment sync
between payroll bills and snapshots.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from backoffice_kernel.domain.commands import (
    AddRecurringDeduction,
    CreateBill,
    PostLedgerEntry,
)
from backoffice_kernel.exceptions import (
    ImmutabilityViolationError,
    InvalidOperationError,
    InvalidPeriodError,
    NoActivePartnersError,
    NonPositiveAmountError,
    PartnerNotFoundError,
    PayrollAlreadyGeneratedError,
)
from backoffice_kernel.models.ledger import LedgerEntry
from backoffice_modules.payroll.config import PayrollConfig
from backoffice_modules.payroll.orm import PayrollSnapshotModel
from backoffice_modules.payroll.service import PayrollSnapshotter


@pytest.fixture
def maria(partners):
    """Base 8000, recurring 200."""
    partner = partners.register_partner("Maria Silva", "12345678900", Decimal("8000"))
    partners.add_recurring_deduction(
        AddRecurringDeduction(partner_code=partner.code, label="Plano de saúde", amount=Decimal("200"))
    )
    return partner


@pytest.fixture
def paid_gym_bill(bills, maria):
    bill = bills.create_single(
        CreateBill(
            direction="pagar",
            description="Academia",
            amount=Decimal("150"),
            due_date=date(2025, 1, 10),
            cost_center_code=maria.code,
        )
    )
    bills.mark_paid(bill.id, date(2025, 1, 10))
    return bill


class TestGenerate:

    def test_net_pay_bill_and_snapshot(self, snapshotter, maria, paid_gym_bill, bills):
        result = snapshotter.generate(1, 2025)

        assert result.is_complete
        [snapshot] = result.snapshots
        assert snapshot.partner_name == "Maria Silva"
        assert snapshot.base_pay == Decimal("8000")
        assert snapshot.forecast_deductions == Decimal("200")
        assert snapshot.actual_deductions == Decimal("150")
        assert snapshot.total_deductions == Decimal("350")
        assert snapshot.net_pay == Decimal("7650")
        assert snapshot.is_paid is False

        bill = bills.get(snapshot.generated_bill_id)
        assert bill.is_payroll is True
        assert bill.amount == Decimal("7650")
        assert bill.direction == "pagar"
        assert bill.description == "Pró-labore Maria Silva - 01/2025"
        assert bill.due_date == date(2025, 1, 31)
        assert bill.category == "Pró-labore"
        assert bill.partner_responsible_id == maria.id
        assert "Líquido: R$ 7650.00" in bill.notes

    def test_consumed_bill_marked_processed(self, snapshotter, maria, paid_gym_bill):
        snapshotter.generate(1, 2025)
        assert paid_gym_bill.processed_for_payroll is True

    def test_itemization_stored(self, snapshotter, maria, paid_gym_bill):
        [snapshot] = snapshotter.generate(1, 2025).snapshots
        assert [line["label"] for line in snapshot.itemization["paid_bills"]] == ["Academia"]
        assert snapshot.itemization["recurring"][0]["label"] == "Plano de saúde"

    def test_second_run_rejected(self, snapshotter, maria):
        snapshotter.generate(1, 2025)
        with pytest.raises(PayrollAlreadyGeneratedError) as exc_info:
            snapshotter.generate(1, 2025)
        assert exc_info.value.code == "PAYROLL_ALREADY_GENERATED"

    def test_processed_bill_not_counted_next_month(self, snapshotter, maria, paid_gym_bill):
        snapshotter.generate(1, 2025)
        [february] = snapshotter.generate(2, 2025).snapshots
        assert february.net_pay == Decimal("7800")

    def test_no_active_partners(self, snapshotter):
        with pytest.raises(NoActivePartnersError):
            snapshotter.generate(1, 2025)

    def test_invalid_period(self, snapshotter, maria):
        with pytest.raises(InvalidPeriodError):
            snapshotter.generate(13, 2025)

    def test_non_positive_net_pay_skips_bill(self, snapshotter, partners, captured_logs):
        partner = partners.register_partner("Ana Costa", "111", Decimal("100"))
        partners.add_recurring_deduction(
            AddRecurringDeduction(partner_code=partner.code, label="Adiantamento", amount=Decimal("300"))
        )

        [snapshot] = snapshotter.generate(1, 2025).snapshots

        assert snapshot.net_pay == Decimal("-200")
        assert snapshot.generated_bill_id is None
        assert any(r["message"] == "payroll_bill_skipped" for r in captured_logs())

    def test_direct_deductions_consumed_and_reset(self, snapshotter, maria, ledger, session):
        entry = ledger.post(
            PostLedgerEntry(
                entry_date=date(2025, 1, 12),
                direction="out",
                amount=Decimal("80"),
                description="Adiantamento",
                cost_center_code=maria.code,
            )
        )

        [snapshot] = snapshotter.generate(1, 2025).snapshots

        assert snapshot.net_pay == Decimal("7720")
        assert session.get(LedgerEntry, entry.id).processed_for_payroll is True
        assert maria.partner_actual_deduction_amount == Decimal("0")

    def test_paid_payroll_resets_next_period(self, snapshotter, maria, bills, cost_centers):
        [january] = snapshotter.generate(1, 2025).snapshots
        bills.mark_paid(january.generated_bill_id, date(2025, 1, 31))
        assert maria.actual_amount == Decimal("7800")

        snapshotter.generate(2, 2025)

        assert maria.actual_amount == Decimal("0")
        assert cost_centers.get("PRO-LABORE").actual_amount == Decimal("0")

    def test_unpaying_settled_payroll_keeps_accumulators(
        self, snapshotter, maria, bills, ledger, cost_centers, captured_logs
    ):
        [january] = snapshotter.generate(1, 2025).snapshots
        bills.mark_paid(january.generated_bill_id, date(2025, 1, 31))
        snapshotter.generate(2, 2025)
        assert ledger.entry_for_bill(january.generated_bill_id).processed_for_payroll is True

        bills.mark_unpaid(january.generated_bill_id)

        assert bills.get(january.generated_bill_id).is_paid is False
        assert maria.own_actual_amount == Decimal("0")
        assert maria.actual_amount == Decimal("0")
        assert cost_centers.get("PRO-LABORE").actual_amount == Decimal("0")
        assert any(r["message"] == "ledger_entry_effect_consumed" for r in captured_logs())

    def test_payroll_paid_after_close_settles_next_run(self, snapshotter, maria, bills, ledger):
        [january] = snapshotter.generate(1, 2025).snapshots
        snapshotter.generate(2, 2025)
        bills.mark_paid(january.generated_bill_id, date(2025, 2, 5))
        assert maria.actual_amount == Decimal("7800")

        snapshotter.generate(3, 2025)

        assert ledger.entry_for_bill(january.generated_bill_id).processed_for_payroll is True
        assert maria.actual_amount == Decimal("0")

    def test_one_failing_partner_does_not_stop_the_run(
        self, snapshotter, maria, partners, monkeypatch, session
    ):
        beatriz = partners.register_partner("Beatriz Lima", "222", Decimal("5000"))
        original = snapshotter.compensation.compute

        def compute(partner_id, start, end):
            if partner_id == beatriz.id:
                raise PartnerNotFoundError(str(partner_id))
            return original(partner_id, start, end)

        monkeypatch.setattr(snapshotter.compensation, "compute", compute)

        result = snapshotter.generate(1, 2025)

        assert result.is_complete is False
        assert [s.partner_name for s in result.snapshots] == ["Maria Silva"]
        [failure] = result.errors
        assert failure.partner_id == beatriz.id
        assert failure.error_code == "PARTNER_NOT_FOUND"
        assert snapshotter.status(1, 2025).generated is True

    def test_unexpected_error_isolated_to_its_partner(
        self, snapshotter, maria, partners, monkeypatch, captured_logs
    ):
        beatriz = partners.register_partner("Beatriz Lima", "222", Decimal("5000"))
        compute = snapshotter.compensation.compute

        def failing_compute(partner_id, start, end):
            if partner_id == beatriz.id:
                raise ValueError("malformed partner record")
            return compute(partner_id, start, end)

        monkeypatch.setattr(snapshotter.compensation, "compute", failing_compute)

        result = snapshotter.generate(1, 2025)

        assert [s.partner_name for s in result.snapshots] == ["Maria Silva"]
        [failure] = result.errors
        assert failure.partner_id == beatriz.id
        assert failure.error_code == "ValueError"
        assert failure.message == "malformed partner record"
        assert snapshotter.status(1, 2025).generated is True
        [logged] = [r for r in captured_logs() if r["message"] == "payroll_partner_failed"]
        assert logged["error_code"] == "ValueError"
        assert "Traceback" in logged["traceback"]

    def test_partner_failure_keeps_caller_work_when_not_committing(
        self, snapshotter, maria, partners, cost_centers, monkeypatch, session
    ):
        beatriz = partners.register_partner("Beatriz Lima", "222", Decimal("5000"))
        compute = snapshotter.compensation.compute

        def failing_compute(partner_id, start, end):
            if partner_id == beatriz.id:
                raise RuntimeError("statement service down")
            return compute(partner_id, start, end)

        monkeypatch.setattr(snapshotter.compensation, "compute", failing_compute)

        result = snapshotter.generate(1, 2025, commit=False)

        assert len(result.errors) == 1
        assert cost_centers.find(beatriz.code) is not None
        assert cost_centers.find(maria.code) is not None
        assert snapshotter.status(1, 2025).generated is True
        session.rollback()
        assert snapshotter.status(1, 2025).generated is False

    def test_custom_bill_labels(self, session, tenant_context, deterministic_clock, maria, bills):
        config = PayrollConfig(bill_category="Retirada", bill_description="Retirada")
        snapshotter = PayrollSnapshotter(session, tenant_context, deterministic_clock, config=config)

        [snapshot] = snapshotter.generate(1, 2025).snapshots

        bill = bills.get(snapshot.generated_bill_id)
        assert bill.category == "Retirada"
        assert bill.description == "Retirada Maria Silva - 01/2025"

    def test_notification_after_commit(self, snapshotter, maria, notifier):
        snapshotter.generate(1, 2025)
        [payload] = notifier.of_type("payroll_generated")
        assert payload["generated"] == 1
        assert payload["total_net_pay"] == "7800.00"

    def test_commit_false_leaves_transaction_open(self, snapshotter, maria, notifier, session):
        snapshotter.generate(1, 2025, commit=False)
        assert notifier.events == []
        session.rollback()
        assert snapshotter.status(1, 2025).generated is False


class TestStatusAndHistory:

    def test_status(self, snapshotter, maria):
        assert snapshotter.status(1, 2025).generated is False
        snapshotter.generate(1, 2025)
        status = snapshotter.status(1, 2025)
        assert status.generated is True
        assert len(status.snapshots) == 1

    def test_history_totals(self, snapshotter, maria, paid_gym_bill):
        snapshotter.generate(1, 2025)
        snapshotter.generate(2, 2025)

        history = snapshotter.history(2025)

        assert [s.period_month for s in history.snapshots] == [1, 2]
        assert history.total_base_pay == Decimal("16000")
        assert history.total_deductions == Decimal("550")
        assert history.total_net_pay == Decimal("15450")

    def test_history_by_partner(self, snapshotter, maria, partners):
        beatriz = partners.register_partner("Beatriz Lima", "222", Decimal("5000"))
        snapshotter.generate(1, 2025)
        history = snapshotter.history(2025, partner_id=beatriz.id)
        assert [s.partner_name for s in history.snapshots] == ["Beatriz Lima"]
        assert snapshotter.history(2024).snapshots == ()


class TestSnapshotImmutability:

    def _row(self, session, snapshotter):
        [summary] = snapshotter.generate(1, 2025).snapshots
        return session.get(PayrollSnapshotModel, summary.id)

    def test_financial_fields_frozen(self, session, snapshotter, maria):
        row = self._row(session, snapshotter)
        with pytest.raises(ImmutabilityViolationError):
            with session.begin_nested():
                row.net_pay = Decimal("1")
                session.flush()
        assert session.get(PayrollSnapshotModel, row.id).net_pay == Decimal("7800")

    def test_delete_forbidden(self, session, snapshotter, maria):
        row = self._row(session, snapshotter)
        with pytest.raises(ImmutabilityViolationError):
            with session.begin_nested():
                session.delete(row)
                session.flush()


class TestPaymentSync:

    def test_paying_payroll_bill_marks_snapshot_paid(self, snapshotter, maria, bills, cost_centers):
        [summary] = snapshotter.generate(1, 2025).snapshots

        bills.mark_paid(summary.generated_bill_id, date(2025, 2, 5))

        [snapshot] = snapshotter.status(1, 2025).snapshots
        assert snapshot.is_paid is True
        assert snapshot.paid_date == date(2025, 2, 5)
        assert maria.actual_amount == Decimal("7800")
        assert cost_centers.get("PRO-LABORE").actual_amount == Decimal("7800")

    def test_unpaying_reopens_snapshot(self, snapshotter, maria, bills):
        [summary] = snapshotter.generate(1, 2025).snapshots
        bills.mark_paid(summary.generated_bill_id)

        bills.mark_unpaid(summary.generated_bill_id)

        [snapshot] = snapshotter.status(1, 2025).snapshots
        assert snapshot.is_paid is False
        assert snapshot.paid_date is None
        assert maria.actual_amount == Decimal("0")


class TestRefreshPayrollBill:

    def test_new_recurring_deduction_lowers_bill(self, snapshotter, maria, paid_gym_bill, partners, bills):
        [summary] = snapshotter.generate(1, 2025).snapshots
        partners.add_recurring_deduction(
            AddRecurringDeduction(partner_code=maria.code, label="Seguro", amount=Decimal("50"))
        )

        bill = snapshotter.refresh_payroll_bill(maria.id)

        assert bill.id == summary.generated_bill_id
        assert bill.amount == Decimal("7600")

    def test_base_pay_change(self, snapshotter, maria, paid_gym_bill, cost_centers):
        snapshotter.generate(1, 2025)
        cost_centers.set_base_pay(maria.code, Decimal("9000"))

        bill = snapshotter.refresh_payroll_bill(maria.id, 1, 2025)

        assert bill.amount == Decimal("8650")

    def test_defaults_to_clock_month(self, snapshotter, maria, deterministic_clock, partners):
        deterministic_clock.set_time(datetime(2025, 2, 20, 9, 0, tzinfo=timezone.utc))
        snapshotter.generate(2, 2025)
        partners.add_recurring_deduction(
            AddRecurringDeduction(partner_code=maria.code, label="Seguro", amount=Decimal("50"))
        )

        assert snapshotter.refresh_payroll_bill(maria.id).amount == Decimal("7750")

        deterministic_clock.advance_days(30)
        with pytest.raises(InvalidOperationError):
            snapshotter.refresh_payroll_bill(maria.id)

    def test_without_generated_bill(self, snapshotter, maria):
        with pytest.raises(InvalidOperationError):
            snapshotter.refresh_payroll_bill(maria.id, 1, 2025)

    def test_non_positive_result_rejected(self, snapshotter, maria, cost_centers):
        snapshotter.generate(1, 2025)
        cost_centers.set_base_pay(maria.code, Decimal("100"))
        with pytest.raises(NonPositiveAmountError):
            snapshotter.refresh_payroll_bill(maria.id, 1, 2025)
