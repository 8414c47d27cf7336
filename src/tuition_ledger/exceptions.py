"""Exception hierarchy for the tuition ledger."""


class LedgerError(Exception):
    """Base class for all ledger errors."""


class FeeConfigurationError(LedgerError):
    """A fee schedule is missing a level or holds an invalid amount."""


class AccrualOrderError(LedgerError):
    """Monthly accrual was invoked with a month earlier than the last one applied."""


class InvalidTransitionError(LedgerError):
    """A payment status transition is not allowed by the verification workflow."""

    def __init__(self, payment_id: str, current_status: str, action: str):
        self.payment_id = payment_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} payment {payment_id} while it is {current_status}"
        )


class DuplicatePaymentError(LedgerError):
    """A payment with the same identifier already exists in the ledger."""


class RepresentativeNotFoundError(LedgerError):
    """No representative matches the given identification."""


class PaymentNotFoundError(LedgerError):
    """No payment matches the given identifier."""


class TransportError(LedgerError):
    """The remote store could not be reached or answered with an error."""


class UserNotFoundError(LedgerError):
    """No staff account matches the given identification."""
