class TaxServiceError(Exception):
    """Base error for the tax-service integration."""


class TaxServiceAuthError(TaxServiceError):
    """Login handshake rejected, or a call still unauthorized after one re-login."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class SyncNotConfiguredError(TaxServiceError):
    """No watermark exists yet for the tenant (first run must pass `since`)."""


class ReconciliationError(TaxServiceError):
    """A single invoice could not be reconciled; the batch continues."""

    def __init__(self, invoice_id: str, message: str) -> None:
        super().__init__(f"{invoice_id}: {message}")
        self.invoice_id = invoice_id


class MalformedInvoiceError(ReconciliationError):
    pass


class PartnerCreationError(ReconciliationError):
    pass
