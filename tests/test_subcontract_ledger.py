"""Tests for contract value maintenance from change orders."""

from decimal import Decimal

from progress_billing.models import ChangeOrder
from progress_billing.services.subcontract_ledger import (
    ChangeOrderStatus,
    SubcontractLedger,
    compute_current_value,
)


class TestComputeCurrentValue:
    """Test the pure current value computation."""

    def test_sums_only_approved(self):
        value = compute_current_value(
            Decimal("100000"),
            [
                ("approved", Decimal("5000")),
                ("pending", Decimal("9999")),
                ("approved", Decimal("-1500")),
                ("void", Decimal("2500")),
                ("withdrawn", Decimal("700")),
                ("rejected", Decimal("300")),
            ],
        )
        assert value == Decimal("103500")

    def test_no_change_orders(self):
        assert compute_current_value(Decimal("100000"), []) == Decimal("100000")


class TestAffectsCurrentValue:
    def test_entering_or_leaving_approved(self):
        affects = SubcontractLedger.affects_current_value
        assert affects("pending", "approved", Decimal("10"), Decimal("10")) is True
        assert affects("approved", "void", Decimal("10"), Decimal("10")) is True
        assert affects("approved", "withdrawn", Decimal("10"), Decimal("10")) is True

    def test_amount_edit_while_approved(self):
        affects = SubcontractLedger.affects_current_value
        assert affects("approved", "approved", Decimal("10"), Decimal("12")) is True
        assert affects("approved", "approved", Decimal("10"), Decimal("10")) is False

    def test_unapproved_changes_do_not_matter(self):
        affects = SubcontractLedger.affects_current_value
        assert affects("pending", "under_review", Decimal("10"), Decimal("99")) is False
        assert affects("pending", "rejected", Decimal("10"), Decimal("10")) is False


class TestRecomputeCurrentValue:
    """Recompute against persisted change orders."""

    async def test_recompute_from_approved_set(self, session, subcontract, tenant_id):
        session.add_all(
            [
                ChangeOrder(
                    tenant_id=tenant_id,
                    subcontract_id=subcontract.subcontract_id,
                    change_order_number="CO-001",
                    title="Added blocking",
                    description="Blocking for wall-hung fixtures",
                    amount=Decimal("5000.00"),
                    status=ChangeOrderStatus.APPROVED.value,
                ),
                ChangeOrder(
                    tenant_id=tenant_id,
                    subcontract_id=subcontract.subcontract_id,
                    change_order_number="CO-002",
                    title="Deleted mezzanine",
                    description="Mezzanine framing removed from scope",
                    amount=Decimal("-2000.00"),
                    status=ChangeOrderStatus.APPROVED.value,
                ),
                ChangeOrder(
                    tenant_id=tenant_id,
                    subcontract_id=subcontract.subcontract_id,
                    change_order_number="CO-003",
                    title="Pending RFI",
                    description="Awaiting architect response",
                    amount=Decimal("750.00"),
                    status=ChangeOrderStatus.PENDING.value,
                ),
            ]
        )

        change = await SubcontractLedger(session).recompute_current_value(subcontract)

        assert change.changed is True
        assert change.old_value == Decimal("100000.00")
        assert change.new_value == Decimal("103000.00")
        assert subcontract.current_value == Decimal("103000.00")

    async def test_leaving_approved_removes_amount(self, session, subcontract, tenant_id):
        change_order = ChangeOrder(
            tenant_id=tenant_id,
            subcontract_id=subcontract.subcontract_id,
            change_order_number="CO-001",
            title="Added blocking",
            description="Blocking for wall-hung fixtures",
            amount=Decimal("5000.00"),
            status=ChangeOrderStatus.APPROVED.value,
        )
        session.add(change_order)
        ledger = SubcontractLedger(session)
        await ledger.recompute_current_value(subcontract)
        assert subcontract.current_value == Decimal("105000.00")

        change_order.status = ChangeOrderStatus.VOID.value
        change = await ledger.recompute_current_value(subcontract)

        assert change.new_value == Decimal("100000.00")
        assert subcontract.current_value == Decimal("100000.00")

    async def test_unchanged_value_reports_no_change(self, session, subcontract):
        change = await SubcontractLedger(session).recompute_current_value(subcontract)

        assert change.changed is False
        assert subcontract.current_value == Decimal("100000.00")
