"""Tests for the payment application service."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select

from progress_billing.calculators import CarryForward
from progress_billing.models import AuditEvent, PaymentApplication
from progress_billing.services.payment_application_service import (
    PaymentApplicationService,
)
from progress_billing.services.result import ErrorCategory, ErrorCode, ServiceResult
from progress_billing.services.sequencer import PaymentApplicationSequencer


async def audit_actions(session, entity_id) -> list[str]:
    result = await session.execute(
        select(AuditEvent.action)
        .where(AuditEvent.entity_id == entity_id)
        .order_by(AuditEvent.created_at)
    )
    return list(result.scalars().all())


class StaleSequencer(PaymentApplicationSequencer):
    """Hands out number 1 as if another writer had not committed yet."""

    async def next_for(self, subcontract_id, tenant_id=None):
        return ServiceResult.success(CarryForward(application_number=1))


class TestCreatePaymentApplication:
    """Test creating payment applications."""

    async def test_first_application(self, session, subcontract, create_application):
        """20,000 of work at 10% retainage leaves 18,000 due."""
        application = await create_application(subcontract, "20000")

        assert application.application_number == 1
        assert application.status == "draft"
        assert application.scheduled_value == Decimal("100000.00")
        assert application.retainage_percent == Decimal("10.00")
        assert application.retainage_this_period == Decimal("2000.00")
        assert application.total_earned_less_retainage == Decimal("18000.00")
        assert application.current_payment_due == Decimal("18000.00")

    async def test_second_application_carries_forward(
        self, session, subcontract, create_application
    ):
        """Application 2 carries application 1 forward."""
        await create_application(subcontract, "20000", month=1)
        second = await create_application(subcontract, "30000", month=2)

        assert second.application_number == 2
        assert second.work_completed_previous == Decimal("20000.00")
        assert second.work_completed_to_date == Decimal("50000.00")
        assert second.retainage_previous == Decimal("2000.00")
        assert second.retainage_this_period == Decimal("3000.00")
        assert second.total_retainage == Decimal("5000.00")
        assert second.less_previous_certificates == Decimal("18000.00")
        assert second.current_payment_due == Decimal("27000.00")

    async def test_creation_leaves_ledger_untouched(
        self, session, subcontract, create_application
    ):
        await create_application(subcontract, "20000")
        await session.refresh(subcontract)

        assert subcontract.billed_to_date == Decimal("0")
        assert subcontract.paid_to_date == Decimal("0")
        assert subcontract.retainage_held == Decimal("0")

    async def test_records_audit_event(self, session, subcontract, create_application):
        application = await create_application(subcontract, "20000")

        assert await audit_actions(session, application.payment_application_id) == [
            "created"
        ]

    async def test_unknown_subcontract(self, pay_app_service, subcontract):
        result = await pay_app_service.create_payment_application(
            subcontract_id=uuid4(),
            period_start=date(2024, 1, 1),
            period_end=date(2024, 1, 31),
            work_completed_this_period=Decimal("100"),
            stored_materials=Decimal("0"),
        )

        assert result.is_success is False
        assert result.error_code == ErrorCode.SUBCONTRACT_NOT_FOUND
        assert result.category == ErrorCategory.NOT_FOUND

    async def test_inverted_period(self, pay_app_service, subcontract):
        result = await pay_app_service.create_payment_application(
            subcontract_id=subcontract.subcontract_id,
            period_start=date(2024, 1, 31),
            period_end=date(2024, 1, 1),
            work_completed_this_period=Decimal("100"),
            stored_materials=Decimal("0"),
        )

        assert result.error_code == ErrorCode.INVALID_PERIOD

    async def test_period_out_of_order(
        self, session, pay_app_service, subcontract, create_application
    ):
        await create_application(subcontract, "20000", month=3)

        result = await pay_app_service.create_payment_application(
            subcontract_id=subcontract.subcontract_id,
            period_start=date(2024, 2, 1),
            period_end=date(2024, 2, 28),
            work_completed_this_period=Decimal("100"),
            stored_materials=Decimal("0"),
        )

        assert result.error_code == ErrorCode.PERIOD_OUT_OF_ORDER

    async def test_concurrent_number_conflict_then_retry(
        self, session, subcontract, create_application, pay_app_service, tenant_id
    ):
        """Losing a numbering race fails with CONFLICT; a retry gets a new number."""
        subcontract_id = subcontract.subcontract_id
        await create_application(subcontract, "20000", month=1)

        racing = PaymentApplicationService(session, tenant_id)
        racing.sequencer = StaleSequencer(session)
        lost = await racing.create_payment_application(
            subcontract_id=subcontract_id,
            period_start=date(2024, 2, 1),
            period_end=date(2024, 2, 28),
            work_completed_this_period=Decimal("30000"),
            stored_materials=Decimal("0"),
        )

        assert lost.is_success is False
        assert lost.error_code == ErrorCode.CONFLICT

        retry = await pay_app_service.create_payment_application(
            subcontract_id=subcontract_id,
            period_start=date(2024, 2, 1),
            period_end=date(2024, 2, 28),
            work_completed_this_period=Decimal("30000"),
            stored_materials=Decimal("0"),
        )
        assert retry.is_success, retry.error
        assert retry.value.application_number == 2
        await session.commit()

        numbers = await session.scalars(
            select(PaymentApplication.application_number)
            .where(PaymentApplication.subcontract_id == subcontract_id)
            .order_by(PaymentApplication.application_number)
        )
        assert list(numbers) == [1, 2]


class TestUpdatePaymentApplication:
    """Test revising and moving payment applications."""

    async def test_walk_to_paid_posts_ledger(
        self, session, subcontract, create_application, move_application
    ):
        """Paying with an approved amount posts billed, paid and retainage."""
        first = await create_application(subcontract, "20000", month=1)
        await move_application(first, "submitted", "approved", "paid")
        second = await create_application(subcontract, "30000", month=2)

        await move_application(second, "submitted")
        await move_application(second, "approved", approved_amount=Decimal("26000"))
        second = await move_application(second, "paid")
        await session.refresh(subcontract)

        assert second.paid_date is not None
        assert subcontract.billed_to_date == Decimal("45000.00")
        assert subcontract.paid_to_date == Decimal("44000.00")
        assert subcontract.retainage_held == Decimal("5000.00")

    async def test_edit_paid_approved_amount(
        self, session, subcontract, create_application, move_application
    ):
        """Raising the approved amount of a paid application posts the difference."""
        second = await create_application(subcontract, "30000", month=1)
        await move_application(second, "submitted")
        await move_application(second, "approved", approved_amount=Decimal("26000"))
        second = await move_application(second, "paid")
        await session.refresh(subcontract)
        paid_before = subcontract.paid_to_date
        billed_before = subcontract.billed_to_date

        await move_application(second, "paid", approved_amount=Decimal("26500"))
        await session.refresh(subcontract)

        assert subcontract.paid_to_date - paid_before == Decimal("500.00")
        assert subcontract.billed_to_date == billed_before

    async def test_edit_paid_work_reconciles_payment_due(
        self, session, subcontract, create_application, move_application
    ):
        """Payment due D1 → D2 on a paid application moves billed by D2 - D1."""
        application = await create_application(subcontract, "20000")
        application = await move_application(application, "submitted", "approved", "paid")
        await session.refresh(subcontract)
        assert subcontract.billed_to_date == Decimal("18000.00")

        application = await move_application(application, "paid", work=Decimal("25000"))
        await session.refresh(subcontract)

        assert application.current_payment_due == Decimal("22500.00")
        assert subcontract.billed_to_date == Decimal("22500.00")
        assert subcontract.paid_to_date == Decimal("22500.00")
        assert subcontract.retainage_held == Decimal("2500.00")

    async def test_resaving_paid_does_not_double_count(
        self, session, subcontract, create_application, move_application
    ):
        application = await create_application(subcontract, "20000")
        application = await move_application(application, "submitted", "approved", "paid")

        application = await move_application(application, "paid", "paid", "paid")
        await session.refresh(subcontract)

        assert subcontract.billed_to_date == Decimal("18000.00")
        assert subcontract.paid_to_date == Decimal("18000.00")
        actions = await audit_actions(session, subcontract.subcontract_id)
        assert actions == ["ledger:apply_paid"]

    async def test_same_status_does_not_restamp(
        self, session, subcontract, create_application, move_application
    ):
        application = await create_application(subcontract, "20000")
        application = await move_application(application, "submitted")
        stamp = application.submitted_date

        application = await move_application(application, "submitted")

        assert application.submitted_date == stamp
        actions = await audit_actions(session, application.payment_application_id)
        assert actions.count("status_change:draft:submitted") == 1
        assert len(actions) == 2

    async def test_draft_amount_edit_recomputes(
        self, session, subcontract, create_application, move_application
    ):
        application = await create_application(subcontract, "20000")

        application = await move_application(
            application, "draft", work=Decimal("10000"), stored=Decimal("500")
        )

        assert application.work_completed_to_date == Decimal("10000.00")
        assert application.total_completed_and_stored == Decimal("10500.00")
        assert application.total_retainage == Decimal("1000.00")
        assert application.current_payment_due == Decimal("9500.00")

    async def test_approved_by_defaults_to_actor(
        self, session, subcontract, create_application, move_application, actor
    ):
        application = await create_application(subcontract, "20000")

        application = await move_application(application, "submitted", "approved")

        assert application.approved_by == actor
        assert application.approved_date is not None

    async def test_optional_fields_keep_values_when_omitted(
        self, session, subcontract, create_application, move_application
    ):
        application = await create_application(subcontract, "20000")
        application = await move_application(
            application, "submitted", invoice_number="INV-100", notes="First draw"
        )

        application = await move_application(application, "under_review")

        assert application.invoice_number == "INV-100"
        assert application.notes == "First draw"

    async def test_invalid_transition(
        self, session, pay_app_service, subcontract, create_application
    ):
        application = await create_application(subcontract, "20000")

        result = await pay_app_service.update_payment_application(
            application.payment_application_id,
            work_completed_this_period=Decimal("20000"),
            stored_materials=Decimal("0"),
            status="paid",
        )

        assert result.error_code == ErrorCode.INVALID_STATUS_TRANSITION
        await session.refresh(application)
        await session.refresh(subcontract)
        assert application.status == "draft"
        assert subcontract.billed_to_date == Decimal("0")

    async def test_negative_approved_amount(
        self, session, pay_app_service, subcontract, create_application
    ):
        application = await create_application(subcontract, "20000")

        result = await pay_app_service.update_payment_application(
            application.payment_application_id,
            work_completed_this_period=Decimal("20000"),
            stored_materials=Decimal("0"),
            status="submitted",
            approved_amount=Decimal("-1"),
        )

        assert result.error_code == ErrorCode.INVALID_AMOUNT

    async def test_failed_update_leaves_no_partial_changes(
        self, session, pay_app_service, subcontract, create_application
    ):
        application = await create_application(subcontract, "20000")

        result = await pay_app_service.update_payment_application(
            application.payment_application_id,
            work_completed_this_period=Decimal("99999"),
            stored_materials=Decimal("0"),
            status="approved",
        )

        assert result.is_success is False
        await session.refresh(application)
        assert application.work_completed_this_period == Decimal("20000.00")
        assert application.current_payment_due == Decimal("18000.00")

    async def test_not_found(self, pay_app_service, subcontract):
        result = await pay_app_service.update_payment_application(
            uuid4(),
            work_completed_this_period=Decimal("1"),
            stored_materials=Decimal("0"),
            status="submitted",
        )

        assert result.error_code == ErrorCode.NOT_FOUND

    async def test_expected_revision_mismatch(
        self, session, pay_app_service, subcontract, create_application
    ):
        application = await create_application(subcontract, "20000")

        result = await pay_app_service.update_payment_application(
            application.payment_application_id,
            work_completed_this_period=Decimal("20000"),
            stored_materials=Decimal("0"),
            status="submitted",
            expected_revision=application.revision + 1,
        )

        assert result.error_code == ErrorCode.CONFLICT
        assert result.category == ErrorCategory.CONFLICT

    async def test_stale_write_is_a_conflict(
        self, session, session_factory, pay_app_service, subcontract, create_application
    ):
        application = await create_application(subcontract, "20000")

        async with session_factory() as other:
            concurrent = await other.get(
                PaymentApplication, application.payment_application_id
            )
            concurrent.notes = "Edited elsewhere"
            await other.commit()

        result = await pay_app_service.update_payment_application(
            application.payment_application_id,
            work_completed_this_period=Decimal("20000"),
            stored_materials=Decimal("0"),
            status="submitted",
        )

        assert result.error_code == ErrorCode.CONFLICT


class TestCarryForwardChain:
    """Successor applications keep chaining off their predecessor."""

    async def test_amount_edit_with_successor_is_refused(
        self, session, pay_app_service, subcontract, create_application
    ):
        first = await create_application(subcontract, "20000", month=1)
        second = await create_application(subcontract, "30000", month=2)
        first_id = first.payment_application_id

        result = await pay_app_service.update_payment_application(
            first_id,
            work_completed_this_period=Decimal("25000"),
            stored_materials=Decimal("0"),
            status="draft",
        )

        assert result.error_code == ErrorCode.NOT_LATEST_APPLICATION
        assert result.category == ErrorCategory.VALIDATION
        await session.refresh(first)
        await session.refresh(second)
        assert first.work_completed_this_period == Decimal("20000.00")
        assert second.less_previous_certificates == first.total_earned_less_retainage
        assert second.work_completed_previous == first.work_completed_to_date
        assert second.retainage_previous == first.total_retainage

    async def test_status_change_with_successor_is_allowed(
        self, session, subcontract, create_application, move_application
    ):
        first = await create_application(subcontract, "20000", month=1)
        await create_application(subcontract, "30000", month=2)

        first = await move_application(first, "submitted", "approved", "paid")

        assert first.status == "paid"
        assert first.current_payment_due == Decimal("18000.00")

    async def test_latest_application_can_still_be_revised(
        self, session, subcontract, create_application, move_application
    ):
        first = await create_application(subcontract, "20000", month=1)
        second = await create_application(subcontract, "30000", month=2)

        second = await move_application(second, "draft", work=Decimal("35000"))

        assert second.less_previous_certificates == first.total_earned_less_retainage
        assert second.work_completed_to_date == Decimal("55000.00")
        assert second.current_payment_due == Decimal("31500.00")


class TestReadAndDelete:
    """Test reads, listing and soft delete."""

    async def test_get_and_tenant_isolation(
        self, session, pay_app_service, subcontract, create_application, other_tenant_id
    ):
        application = await create_application(subcontract, "20000")

        found = await pay_app_service.get_payment_application(
            application.payment_application_id
        )
        assert found.value.payment_application_id == application.payment_application_id

        foreign = PaymentApplicationService(session, other_tenant_id)
        hidden = await foreign.get_payment_application(application.payment_application_id)
        assert hidden.error_code == ErrorCode.NOT_FOUND

    async def test_list_newest_number_first(
        self, session, pay_app_service, subcontract, create_application, move_application
    ):
        first = await create_application(subcontract, "1000", month=1)
        await move_application(first, "submitted")
        await create_application(subcontract, "1000", month=2)
        await create_application(subcontract, "1000", month=3)

        result = await pay_app_service.list_payment_applications(
            subcontract_id=subcontract.subcontract_id
        )
        assert result.value.total == 3
        assert [a.application_number for a in result.value.items] == [3, 2, 1]

        submitted = await pay_app_service.list_payment_applications(status="submitted")
        assert [a.application_number for a in submitted.value.items] == [1]

        paged = await pay_app_service.list_payment_applications(page=2, page_size=2)
        assert paged.value.total == 3
        assert [a.application_number for a in paged.value.items] == [1]

    async def test_delete_latest_draft(
        self, session, pay_app_service, subcontract, create_application
    ):
        application = await create_application(subcontract, "20000")

        result = await pay_app_service.delete_payment_application(
            application.payment_application_id
        )
        assert result.is_success
        await session.commit()

        assert application.is_deleted is True
        gone = await pay_app_service.get_payment_application(
            application.payment_application_id
        )
        assert gone.error_code == ErrorCode.NOT_FOUND
        listed = await pay_app_service.list_payment_applications()
        assert listed.value.total == 0
        assert await audit_actions(session, application.payment_application_id) == [
            "created",
            "deleted",
        ]

    async def test_delete_requires_draft(
        self, session, pay_app_service, subcontract, create_application, move_application
    ):
        application = await create_application(subcontract, "20000")
        await move_application(application, "submitted")

        result = await pay_app_service.delete_payment_application(
            application.payment_application_id
        )

        assert result.error_code == ErrorCode.NOT_DELETABLE

    async def test_delete_requires_latest(
        self, session, pay_app_service, subcontract, create_application
    ):
        first = await create_application(subcontract, "20000", month=1)
        await create_application(subcontract, "30000", month=2)

        result = await pay_app_service.delete_payment_application(
            first.payment_application_id
        )

        assert result.error_code == ErrorCode.NOT_DELETABLE
