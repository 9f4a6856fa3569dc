"""
Tests for PartnerCompensation: net pay, itemised deductions and the
degraded overview.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from backoffice_kernel.domain.commands import (
    AddRecurringDeduction,
    CreateBill,
    CreateInstallmentSet,
    PostLedgerEntry,
    UpdateRecurringDeduction,
)
from backoffice_kernel.exceptions import PartnerNotFoundError
from backoffice_modules.payroll.compensation import PartnerCompensation
from backoffice_modules.payroll.models import DeductionSource

JANUARY = (date(2025, 1, 1), date(2025, 1, 31))


@pytest.fixture
def maria(partners):
    partner = partners.register_partner("Maria Silva", "12345678900", Decimal("8000"))
    partners.add_recurring_deduction(
        AddRecurringDeduction(partner_code=partner.code, label="Plano de saúde", amount=Decimal("200"))
    )
    return partner


def _partner_bill(bills, partner, amount, due=date(2025, 1, 10), **fields):
    fields.setdefault("description", "Academia")
    return bills.create_single(
        CreateBill(
            direction="pagar",
            amount=Decimal(amount),
            due_date=due,
            cost_center_code=partner.code,
            **fields,
        )
    )


class TestNetPay:

    def test_base_recurring_and_paid_bill(self, compensation, maria, bills):
        bill = _partner_bill(bills, maria, "150")
        bills.mark_paid(bill.id)

        breakdown = compensation.compute(maria.id, *JANUARY)

        assert breakdown.base_pay == Decimal("8000")
        assert breakdown.recurring_total == Decimal("200")
        assert breakdown.paid_total == Decimal("150")
        assert breakdown.pending_total == Decimal("0")
        assert breakdown.forecast_deductions == Decimal("200")
        assert breakdown.actual_deductions == Decimal("150")
        assert breakdown.net_pay == Decimal("7650")
        assert breakdown.consumed_bill_ids == (bill.id,)

    def test_pending_bill_is_forecast_deduction(self, compensation, maria, bills):
        _partner_bill(bills, maria, "300")
        breakdown = compensation.compute(maria.id, *JANUARY)
        assert breakdown.pending_total == Decimal("300")
        assert breakdown.forecast_deductions == Decimal("500")
        assert breakdown.consumed_bill_ids == ()
        assert compensation.net_pay(maria.id, *JANUARY) == Decimal("7500")

    def test_excluded_bills(self, compensation, maria, bills):
        cancelled = _partner_bill(bills, maria, "10", description="Cancelled")
        bills.cancel(cancelled.id)
        _partner_bill(bills, maria, "20", due=date(2025, 2, 10), description="February")
        processed = _partner_bill(bills, maria, "30", description="Processed")
        bills.mark_processed_for_payroll([processed.id])
        bills.create_single(
            CreateBill(
                direction="pagar",
                description="Pró-labore",
                amount=Decimal("7000"),
                due_date=date(2025, 1, 31),
                cost_center_code=maria.code,
            ),
            is_payroll=True,
        )

        breakdown = compensation.compute(maria.id, *JANUARY)

        assert breakdown.pending_total == Decimal("0")
        assert breakdown.paid_total == Decimal("0")
        assert breakdown.net_pay == Decimal("7800")

    def test_only_installments_due_in_period_count(self, compensation, maria, bills):
        bills.create_installment_set(
            CreateInstallmentSet(
                direction="pagar",
                description="Notebook",
                first_due_date=date(2025, 1, 20),
                installment_count=3,
                total_amount=Decimal("900"),
                cost_center_code=maria.code,
            )
        )
        breakdown = compensation.compute(maria.id, *JANUARY)
        [line] = [item for item in breakdown.lines if item.source is DeductionSource.PENDING_BILL]
        assert line.label == "Notebook (1/3)"
        assert line.amount == Decimal("300")

    def test_inactive_recurring_deduction_ignored(self, compensation, maria, partners):
        [deduction] = partners.list_recurring_deductions(maria.id)
        partners.update_recurring_deduction(deduction.id, UpdateRecurringDeduction(is_active=False))
        assert compensation.compute(maria.id, *JANUARY).recurring_total == Decimal("0")

    def test_direct_deduction(self, compensation, maria, ledger):
        entry = ledger.post(
            PostLedgerEntry(
                entry_date=date(2025, 1, 12),
                direction="out",
                amount=Decimal("80"),
                description="Adiantamento",
                cost_center_code=maria.code,
            )
        )

        breakdown = compensation.compute(maria.id, *JANUARY)

        assert breakdown.direct_total == Decimal("80")
        assert breakdown.actual_deductions == Decimal("80")
        assert breakdown.consumed_entry_ids == (entry.id,)
        assert breakdown.net_pay == Decimal("7720")
        assert breakdown.itemization()["direct"][0]["label"] == "Adiantamento"

    def test_itemization_is_json_ready(self, compensation, maria, bills):
        _partner_bill(bills, maria, "300")
        items = compensation.compute(maria.id, *JANUARY).itemization()
        assert items["recurring"][0]["amount"] == "200.00"
        assert items["pending_bills"][0]["date"] == "2025-01-10"
        assert items["paid_bills"] == []
        assert items["direct_total"] == "0.00"

    def test_unknown_partner(self, compensation):
        with pytest.raises(PartnerNotFoundError):
            compensation.compute(uuid4(), *JANUARY)

    def test_non_partner_center(self, compensation, make_center):
        ops = make_center("OPS")
        with pytest.raises(PartnerNotFoundError):
            compensation.compute(ops.id, *JANUARY)

    def test_partner_of_other_tenant(self, session, maria, other_tenant_context):
        other = PartnerCompensation(session, other_tenant_context.tenant_id)
        with pytest.raises(PartnerNotFoundError):
            other.compute(maria.id, *JANUARY)


class TestOverview:

    def test_every_active_partner(self, compensation, maria, partners, cost_centers):
        partners.register_partner("Beatriz Lima", "98765432100", Decimal("5000"))
        partners.register_partner("Carlos Dias", "11122233344", Decimal("4000"))
        cost_centers.deactivate("PL-CARLOS")

        overview = compensation.overview(1, 2025)

        assert [b.partner_code for b in overview] == ["PL-BEATRIZ", "PL-MARIA"]
        assert [b.net_pay for b in overview] == [Decimal("5000"), Decimal("7800")]
        assert not any(b.degraded for b in overview)

    def test_failure_degrades_one_partner(self, compensation, maria, partners, monkeypatch, captured_logs):
        partners.register_partner("Beatriz Lima", "98765432100", Decimal("5000"))
        original = compensation._direct_entries

        def broken(partner):
            if partner.code == "PL-BEATRIZ":
                raise OperationalError("SELECT", {}, Exception("connection lost"))
            return original(partner)

        monkeypatch.setattr(compensation, "_direct_entries", broken)

        beatriz, maria_view = compensation.overview(1, 2025)

        assert beatriz.degraded is True
        assert beatriz.net_pay == Decimal("5000")
        assert beatriz.lines == ()
        assert maria_view.degraded is False
        assert maria_view.net_pay == Decimal("7800")
        assert any(r["message"] == "partner_compensation_degraded" for r in captured_logs())
