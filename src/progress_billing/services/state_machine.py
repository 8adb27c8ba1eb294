"""Payment application state machine with transition validation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from progress_billing.models.base import utcnow
from progress_billing.services.ledger_sync import LedgerPosting, LedgerSynchronizer

if TYPE_CHECKING:
    from progress_billing.models import PaymentApplication, Subcontract


class PaymentApplicationStatus(str, Enum):
    """Payment application status values."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    PARTIALLY_APPROVED = "partially_approved"
    REJECTED = "rejected"
    PAID = "paid"
    VOID = "void"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


@dataclass(frozen=True)
class ApplicationSnapshot:
    """Persisted values of an application captured before an update."""

    status: str
    current_payment_due: Decimal
    approved_amount: Decimal | None

    @classmethod
    def of(cls, application: PaymentApplication) -> ApplicationSnapshot:
        return cls(
            status=application.status,
            current_payment_due=application.current_payment_due,
            approved_amount=application.approved_amount,
        )


@dataclass(frozen=True)
class TransitionOutcome:
    """What applying a status to an application did."""

    from_status: str
    to_status: str
    stamped: tuple[str, ...] = ()
    posting: LedgerPosting | None = None

    @property
    def status_changed(self) -> bool:
        return self.from_status != self.to_status


class ApplicationStatusWorkflow:
    """State machine for payment application status transitions.

    Allowed transitions (staying in the same status is always allowed):
    - draft → submitted, void
    - submitted → draft (recall), under_review, approved, partially_approved,
      rejected, void
    - under_review → approved, partially_approved, rejected, void
    - approved → partially_approved, paid, rejected, void
    - partially_approved → approved, paid, rejected, void
    - paid → void
    - rejected → void
    - void → (terminal)

    Date stamps are guarded assignments: a stamp is only written when it is
    still unset, since several source states lead to the same target.
    Entering paid posts the application to its subcontract; saving an
    application that stays paid reconciles the amount deltas instead.
    Void and rejected record the status only.
    """

    S = PaymentApplicationStatus

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        S.DRAFT: [S.SUBMITTED, S.VOID],
        S.SUBMITTED: [
            S.DRAFT,
            S.UNDER_REVIEW,
            S.APPROVED,
            S.PARTIALLY_APPROVED,
            S.REJECTED,
            S.VOID,
        ],
        S.UNDER_REVIEW: [S.APPROVED, S.PARTIALLY_APPROVED, S.REJECTED, S.VOID],
        S.APPROVED: [S.PARTIALLY_APPROVED, S.PAID, S.REJECTED, S.VOID],
        S.PARTIALLY_APPROVED: [S.APPROVED, S.PAID, S.REJECTED, S.VOID],
        S.PAID: [S.VOID],
        S.REJECTED: [S.VOID],
        S.VOID: [],  # Terminal state
    }

    # Statuses an application is considered approved in
    APPROVAL_STATUSES = {S.APPROVED, S.PARTIALLY_APPROVED}

    # Statuses with no further workflow
    TERMINAL = {S.VOID}

    def __init__(self, ledger: LedgerSynchronizer | None = None):
        self.ledger = ledger or LedgerSynchronizer()

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        if from_status == to_status:
            return True
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if to_status not in cls.VALID_TRANSITIONS:
            raise InvalidTransitionError(from_status, to_status, "Unknown status")
        if from_status != to_status and cls.is_terminal(from_status):
            raise InvalidTransitionError(from_status, to_status, "Status is terminal")
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TERMINAL

    def apply(
        self,
        application: PaymentApplication,
        subcontract: Subcontract,
        to_status: str,
        snapshot: ApplicationSnapshot,
        now: datetime | None = None,
        correlation_id: str | None = None,
    ) -> TransitionOutcome:
        """Move an application to `to_status` and run the side effects.

        `snapshot` holds the application's values before this update (taken
        before any recompute of its amounts). Raises InvalidTransitionError
        if the transition is not allowed.
        """
        from_status = snapshot.status
        self.validate_transition(from_status, to_status)

        now = now or utcnow()
        stamped: list[str] = []
        posting: LedgerPosting | None = None

        if from_status != to_status:
            if to_status == self.S.SUBMITTED and application.submitted_date is None:
                application.submitted_date = now
                stamped.append("submitted_date")

            elif to_status == self.S.UNDER_REVIEW and application.reviewed_date is None:
                application.reviewed_date = now
                stamped.append("reviewed_date")

            elif to_status in self.APPROVAL_STATUSES and application.approved_date is None:
                application.approved_date = now
                stamped.append("approved_date")

            elif to_status == self.S.PAID and application.paid_date is None:
                application.paid_date = now
                stamped.append("paid_date")
                posting = self.ledger.apply_paid(
                    subcontract, application, correlation_id=correlation_id
                )

        elif to_status == self.S.PAID:
            # Already paid - sync amount changes as deltas
            posting = self.ledger.reconcile_delta(
                subcontract,
                application,
                old_current_payment_due=snapshot.current_payment_due,
                old_approved_amount=snapshot.approved_amount,
                correlation_id=correlation_id,
            )

        application.status = PaymentApplicationStatus(to_status).value

        return TransitionOutcome(
            from_status=from_status,
            to_status=application.status,
            stamped=tuple(stamped),
            posting=posting,
        )
