"""
Tests for PartnerPayrollService: partner registration and recurring
deductions.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from backoffice_kernel.domain.commands import AddRecurringDeduction, UpdateRecurringDeduction
from backoffice_kernel.exceptions import (
    CostCenterNotFoundError,
    NotAPartnerError,
    RecurringDeductionNotFoundError,
)
from backoffice_modules.payroll.service import PartnerPayrollService


def _deduction(partners, partner, label="Plano de saúde", amount="200"):
    return partners.add_recurring_deduction(
        AddRecurringDeduction(partner_code=partner.code, label=label, amount=Decimal(amount))
    )


class TestRegisterPartner:

    def test_code_from_first_name(self, partners):
        partner = partners.register_partner("Maria Silva", "12345678900", Decimal("8000"))
        assert partner.code == "PL-MARIA"
        assert partner.is_partner is True
        assert partner.partner_document == "12345678900"

    def test_code_collisions_get_suffix(self, partners):
        partners.register_partner("Maria Silva", "1", Decimal("8000"))
        second = partners.register_partner("Maria Souza", "2", Decimal("7000"))
        third = partners.register_partner("maria lima", "3", Decimal("6000"))
        assert second.code == "PL-MARIA-1"
        assert third.code == "PL-MARIA-2"

    def test_explicit_code(self, partners):
        partner = partners.register_partner("Maria Silva", "1", Decimal("8000"), code="pl-ms")
        assert partner.code == "PL-MS"

    def test_base_pay_is_forecast_under_payroll_parent(self, partners, cost_centers):
        partners.register_partner("Maria Silva", "1", Decimal("8000"))
        partners.register_partner("Beatriz Lima", "2", Decimal("5000"))
        parent = cost_centers.get("PRO-LABORE")
        assert parent.forecast_amount == Decimal("13000")
        assert parent.own_forecast_amount == Decimal("0")

    def test_registration_logged(self, partners, captured_logs):
        partners.register_partner("Maria Silva", "1", Decimal("8000"))
        [record] = [r for r in captured_logs() if r["message"] == "partner_registered"]
        assert record["center_code"] == "PL-MARIA"
        assert record["base_pay"] == "8000.00"


class TestRecurringDeductions:

    def test_add_and_list(self, partners):
        partner = partners.register_partner("Maria Silva", "1", Decimal("8000"))
        deduction = _deduction(partners, partner)
        assert deduction.partner_center_id == partner.id
        assert deduction.is_active is True
        assert partners.list_recurring_deductions(partner.id) == [deduction]

    def test_non_partner_rejected(self, partners, make_center):
        ops = make_center("OPS")
        with pytest.raises(NotAPartnerError):
            _deduction(partners, ops)

    def test_unknown_partner_code(self, partners):
        with pytest.raises(CostCenterNotFoundError):
            partners.add_recurring_deduction(
                AddRecurringDeduction(partner_code="PL-NOBODY", label="x", amount=Decimal("1"))
            )

    def test_update_fields(self, partners):
        partner = partners.register_partner("Maria Silva", "1", Decimal("8000"))
        deduction = _deduction(partners, partner)

        updated = partners.update_recurring_deduction(
            deduction.id, UpdateRecurringDeduction(label="Plano odontológico", amount=Decimal("90"))
        )

        assert updated.label == "Plano odontológico"
        assert updated.amount == Decimal("90")
        assert updated.is_active is True

    def test_active_only_filter(self, partners):
        partner = partners.register_partner("Maria Silva", "1", Decimal("8000"))
        health = _deduction(partners, partner)
        advance = _deduction(partners, partner, label="Adiantamento", amount="500")
        partners.update_recurring_deduction(advance.id, UpdateRecurringDeduction(is_active=False))

        active = partners.list_recurring_deductions(partner.id, active_only=True)

        assert [d.id for d in active] == [health.id]
        assert len(partners.list_recurring_deductions(partner.id)) == 2

    def test_remove(self, partners):
        partner = partners.register_partner("Maria Silva", "1", Decimal("8000"))
        deduction = _deduction(partners, partner)
        partners.remove_recurring_deduction(deduction.id)
        assert partners.list_recurring_deductions(partner.id) == []

    def test_missing_deduction(self, partners):
        with pytest.raises(RecurringDeductionNotFoundError):
            partners.update_recurring_deduction(uuid4(), UpdateRecurringDeduction(amount=Decimal("1")))
        with pytest.raises(RecurringDeductionNotFoundError):
            partners.remove_recurring_deduction(uuid4())

    def test_deductions_are_tenant_scoped(self, session, partners, other_tenant_context):
        partner = partners.register_partner("Maria Silva", "1", Decimal("8000"))
        deduction = _deduction(partners, partner)
        other = PartnerPayrollService(session, other_tenant_context)
        with pytest.raises(RecurringDeductionNotFoundError):
            other.remove_recurring_deduction(deduction.id)
        assert other.list_recurring_deductions(partner.id) == []
