"""
Tests for the read-only selectors: cost center tree, ledger views and bill
listings, plus the consistency checks they expose.
"""

from datetime import date
from decimal import Decimal

import pytest

from backoffice_kernel.domain.commands import CreateBill, CreateInstallmentSet, PostLedgerEntry
from backoffice_kernel.domain.dtos import BalanceMismatch, PropagationMismatch
from backoffice_kernel.selectors.bill_selector import BillSelector
from backoffice_kernel.selectors.cost_center_selector import CostCenterSelector
from backoffice_kernel.selectors.ledger_selector import LedgerSelector

JANUARY = (date(2025, 1, 1), date(2025, 1, 31))
QUARTER = (date(2025, 1, 1), date(2025, 3, 31))


@pytest.fixture
def centers_view(session, tenant_id):
    return CostCenterSelector(session, tenant_id)


@pytest.fixture
def ledger_view(session, tenant_id):
    return LedgerSelector(session, tenant_id)


@pytest.fixture
def bills_view(session, tenant_id):
    return BillSelector(session, tenant_id)


@pytest.fixture
def laptop(bills):
    parent, children = bills.create_installment_set(
        CreateInstallmentSet(
            direction="pagar",
            description="Laptop",
            first_due_date=date(2025, 1, 20),
            installment_count=3,
            total_amount=Decimal("900"),
        )
    )
    return parent, children


class TestCostCenterSelector:

    def test_tree_nests_children(self, make_center, centers_view):
        make_center("OPS")
        make_center("IT", parent_code="OPS")
        make_center("INFRA", parent_code="IT")
        make_center("SALES", kind="revenue")

        roots = centers_view.tree()

        assert [r.code for r in roots] == ["OPS", "SALES"]
        assert [c.code for c in roots[0].walk()] == ["OPS", "IT", "INFRA"]

    def test_tree_active_only(self, make_center, cost_centers, centers_view):
        make_center("OPS")
        make_center("IT", parent_code="OPS")
        cost_centers.deactivate("IT")

        [ops] = centers_view.tree(active_only=True)

        assert ops.children == ()
        assert len(list(centers_view.tree()[0].walk())) == 2

    def test_get_normalizes_code(self, make_center, centers_view):
        make_center("OPS")
        assert centers_view.get(" ops ").code == "OPS"
        assert centers_view.get("NOPE") is None

    def test_partners(self, make_center, cost_centers, centers_view):
        make_center("PL-ANA", is_partner=True)
        make_center("PL-BIA", is_partner=True)
        cost_centers.deactivate("PL-BIA")
        assert [p.code for p in centers_view.partners()] == ["PL-ANA"]
        assert len(centers_view.partners(active_only=False)) == 2

    def test_consistent_tree_verifies(self, make_center, cost_centers, centers_view):
        make_center("OPS")
        make_center("IT", parent_code="OPS")
        cost_centers.increment_actual("IT", Decimal("100"))
        cost_centers.increment_forecast("OPS", Decimal("40"))
        assert centers_view.verify_propagation() == []

    def test_corruption_reported(self, make_center, cost_centers, centers_view, session):
        ops = make_center("OPS")
        make_center("IT", parent_code="OPS")
        cost_centers.increment_actual("IT", Decimal("100"))

        ops.actual_amount = Decimal("50")
        session.flush()

        assert centers_view.verify_propagation() == [
            PropagationMismatch(code="OPS", column="actual", stored=Decimal("50"), expected=Decimal("100"))
        ]

    def test_other_tenant_sees_nothing(self, session, make_center, other_tenant_context):
        make_center("OPS")
        other = CostCenterSelector(session, other_tenant_context.tenant_id)
        assert other.get("OPS") is None
        assert other.tree() == []


class TestLedgerSelector:

    def test_entries_in_date_range(self, ledger, ledger_view):
        for day, amount in ((date(2025, 1, 5), "100"), (date(2025, 1, 20), "50"), (date(2025, 2, 9), "10")):
            ledger.post(PostLedgerEntry(entry_date=day, direction="in", amount=Decimal(amount)))

        entries = ledger_view.entries(*JANUARY)

        assert [e.amount for e in entries] == [Decimal("100"), Decimal("50")]
        assert ledger_view.balance() == Decimal("160")

    def test_empty_ledger_balance(self, ledger_view):
        assert ledger_view.balance() == Decimal("0")
        assert ledger_view.verify_running_balance() == []

    def test_corrupted_balance_reported(self, ledger, ledger_view, session):
        ledger.post(PostLedgerEntry(entry_date=date(2025, 1, 10), direction="in", amount=Decimal("100")))
        second = ledger.post(
            PostLedgerEntry(entry_date=date(2025, 1, 11), direction="out", amount=Decimal("30"))
        )

        second.running_balance = Decimal("1")
        session.flush()

        assert ledger_view.verify_running_balance() == [
            BalanceMismatch(sequence=2, stored=Decimal("1"), expected=Decimal("70"))
        ]

    def test_view_carries_effect(self, ledger, ledger_view, make_center):
        make_center("OPS")
        ledger.post(
            PostLedgerEntry(
                entry_date=date(2025, 1, 10),
                direction="out",
                amount=Decimal("10"),
                cost_center_code="OPS",
            )
        )
        [view] = ledger_view.entries()
        assert view.effect_kind == "center_actual"
        assert view.cost_center_code == "OPS"
        assert view.processed_for_payroll is False


class TestBillSelector:

    def test_macro_hidden_by_default(self, laptop, bills_view):
        parent, children = laptop
        listed = bills_view.list_bills()
        assert [b.id for b in listed] == [c.id for c in children]
        assert parent.id in {b.id for b in bills_view.list_bills(include_macro=True)}

    def test_children_in_installment_order(self, laptop, bills_view):
        parent, _ = laptop
        children = bills_view.children(parent.id)
        assert [c.installment_number for c in children] == [1, 2, 3]
        assert {c.installment_count for c in children} == {3}

    def test_status_filter(self, laptop, bills, bills_view):
        _, children = laptop
        bills.mark_paid(children[0].id)
        paid = bills_view.list_bills(status="paid")
        assert [b.id for b in paid] == [children[0].id]

    def test_totals_skip_cancelled_and_macro(self, laptop, bills, bills_view):
        _, children = laptop
        bills.mark_paid(children[0].id)
        bills.cancel(children[2].id)
        bills.create_single(
            CreateBill(
                direction="receber",
                description="Consulting",
                amount=Decimal("1200"),
                due_date=date(2025, 2, 1),
            )
        )

        totals = bills_view.totals(*QUARTER)

        assert totals.paid_payable == Decimal("300")
        assert totals.pending_payable == Decimal("300")
        assert totals.pending_receivable == Decimal("1200")
        assert totals.paid_receivable == Decimal("0")
        assert totals.count == 3

    def test_other_tenant_get(self, laptop, session, other_tenant_context):
        parent, _ = laptop
        assert BillSelector(session, other_tenant_context.tenant_id).get(parent.id) is None
