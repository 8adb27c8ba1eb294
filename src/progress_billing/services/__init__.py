"""Progress billing services."""

from progress_billing.services.change_order_service import ChangeOrderService
from progress_billing.services.ledger_sync import LedgerPosting, LedgerSynchronizer
from progress_billing.services.payment_application_service import PaymentApplicationService
from progress_billing.services.result import ErrorCategory, ErrorCode, Page, ServiceResult
from progress_billing.services.sequencer import PaymentApplicationSequencer
from progress_billing.services.state_machine import (
    ApplicationStatusWorkflow,
    InvalidTransitionError,
    PaymentApplicationStatus,
)
from progress_billing.services.subcontract_ledger import ChangeOrderStatus, SubcontractLedger
from progress_billing.services.subcontract_service import SubcontractService, SubcontractStatus

__all__ = [
    "ApplicationStatusWorkflow",
    "ChangeOrderService",
    "ChangeOrderStatus",
    "ErrorCategory",
    "ErrorCode",
    "InvalidTransitionError",
    "LedgerPosting",
    "LedgerSynchronizer",
    "Page",
    "PaymentApplicationSequencer",
    "PaymentApplicationService",
    "PaymentApplicationStatus",
    "ServiceResult",
    "SubcontractLedger",
    "SubcontractService",
    "SubcontractStatus",
]
