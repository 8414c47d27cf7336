"""Verification workflow for payment records."""

import logging
from typing import Dict, Optional, Tuple, Union

from ..exceptions import InvalidTransitionError
from .models import PaymentMethod, PaymentRecord, PaymentStatus, WorkflowAction

logger = logging.getLogger(__name__)

# Cash is counted at the till and needs no further review
INITIAL_STATUS_BY_METHOD: Dict[PaymentMethod, PaymentStatus] = {
    PaymentMethod.CASH_BS: PaymentStatus.VERIFIED,
    PaymentMethod.CASH_USD: PaymentStatus.VERIFIED,
    PaymentMethod.CASH_EUR: PaymentStatus.VERIFIED,
    PaymentMethod.CREDIT_CARD: PaymentStatus.PENDING,
    PaymentMethod.DEBIT_CARD: PaymentStatus.PENDING,
    PaymentMethod.PAGO_MOVIL: PaymentStatus.PENDING,
    PaymentMethod.TRANSFER: PaymentStatus.PENDING,
    PaymentMethod.ZELLE: PaymentStatus.PENDING,
}


def initial_status(method: PaymentMethod) -> PaymentStatus:
    """Status a new payment starts in, given its instrument."""
    return INITIAL_STATUS_BY_METHOD.get(PaymentMethod(method), PaymentStatus.PENDING)


class VerificationWorkflow:
    """State machine over Pending, Verified and Rejected.

    Transitions never mutate the record they are given: a new record is
    returned and the caller swaps it into the ledger, so a refused transition
    leaves everything as it was.
    """

    TRANSITIONS: Dict[Tuple[PaymentStatus, WorkflowAction], PaymentStatus] = {
        (PaymentStatus.PENDING, WorkflowAction.VERIFY): PaymentStatus.VERIFIED,
        (PaymentStatus.PENDING, WorkflowAction.REJECT): PaymentStatus.REJECTED,
        (PaymentStatus.REJECTED, WorkflowAction.REACTIVATE): PaymentStatus.PENDING,
    }

    def can_transition(self, status: PaymentStatus, action: WorkflowAction) -> bool:
        return (PaymentStatus(status), WorkflowAction(action)) in self.TRANSITIONS

    def transition(
        self,
        record: PaymentRecord,
        action: Union[WorkflowAction, str],
        reason: Optional[str] = None,
    ) -> PaymentRecord:
        """Apply a workflow action to a payment record.

        Args:
            record: Payment record to transition.
            action: verify, reject or reactivate.
            reason: Justification, required when rejecting.

        Returns:
            A new PaymentRecord with the updated status.

        Raises:
            InvalidTransitionError: If the action is not allowed from the current status.
            ValueError: If the action is unknown or a rejection has no reason.
        """
        action = WorkflowAction(action)
        target = self.TRANSITIONS.get((record.status, action))
        if target is None:
            logger.warning(
                f"Refused {action.value} on payment {record.id} ({record.status.value})"
            )
            raise InvalidTransitionError(record.id, record.status.value, action.value)

        update: Dict[str, object] = {"status": target}
        if action == WorkflowAction.REJECT:
            if not reason or not reason.strip():
                raise ValueError("A rejection reason is required")
            update["rejection_reason"] = reason.strip()
        elif action == WorkflowAction.REACTIVATE:
            update["rejection_reason"] = None

        updated = record.model_copy(update=update)
        logger.info(
            f"Payment {record.id}: {record.status.value} -> {target.value} ({action.value})"
        )
        return updated

    def verify(self, record: PaymentRecord) -> PaymentRecord:
        return self.transition(record, WorkflowAction.VERIFY)

    def reject(self, record: PaymentRecord, reason: str) -> PaymentRecord:
        return self.transition(record, WorkflowAction.REJECT, reason=reason)

    def reactivate(self, record: PaymentRecord) -> PaymentRecord:
        return self.transition(record, WorkflowAction.REACTIVATE)


_default_workflow = VerificationWorkflow()


def transition(
    record: PaymentRecord,
    action: Union[WorkflowAction, str],
    reason: Optional[str] = None,
) -> PaymentRecord:
    """Apply a workflow action using the default workflow."""
    return _default_workflow.transition(record, action, reason=reason)
