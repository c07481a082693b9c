"""
Error taxonomy for the restocking workflow.

Every failure the workflow can surface derives from ``ProcurementError``.
The ``settlement_related`` flag tells the workflow whether the failure
happened while moving value on-chain, in which case the fallback supplier
discovery path is offered instead of terminating.
"""


class ProcurementError(Exception):
    """Base class for all restocking failures."""

    settlement_related: bool = False

    def __init__(self, message: str, *, settlement_related: bool | None = None):
        super().__init__(message)
        if settlement_related is not None:
            self.settlement_related = settlement_related


class ConfigurationMissing(ProcurementError):
    """A credential, endpoint or address needed by the workflow is absent or unusable."""


class NetworkUnreachable(ProcurementError):
    """An RPC or HTTP endpoint could not be reached.

    Raised with ``settlement_related=True`` by the settlement executor and
    with the default ``False`` by HTTP protocol clients.
    """


class SettlementError(ProcurementError):
    """Failure while moving value on the external ledger."""

    settlement_related = True


class InsufficientFunds(SettlementError):
    """The agent credential cannot cover the invoiced amount."""


class TransactionRejected(SettlementError):
    """The transfer was refused at submission or reverted on-chain."""


class ConfirmationTimeout(TransactionRejected):
    """No receipt was observed before the confirmation deadline."""


class InvalidInvoice(ProcurementError):
    """A payment-required response did not carry a usable invoice."""


class BackendError(ProcurementError):
    """The order endpoint answered with a non-402, non-2xx status."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class OrderRejected(ProcurementError):
    """The order endpoint answered 2xx but reported ``success: false``."""


class PaymentVerificationFailed(ProcurementError):
    """Supplier side: the presented proof does not settle the invoice."""
