class LedgerError(Exception):
    """Base class for every error surfaced by the ingestion core."""

    code = "ledger_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class EmptyInputError(LedgerError):
    code = "empty_input"


class ExtractionError(LedgerError):
    """The language model could not turn the text into financial data."""

    code = "extraction_failed"


class TransportError(ExtractionError):
    code = "transport_error"


class DecodeError(ExtractionError):
    code = "decode_error"


class MalformedResponseError(ExtractionError):
    code = "malformed_response"


class NoFinancialDataError(ExtractionError):
    code = "no_financial_data"

    def __init__(self, message: str, reply: str | None = None):
        super().__init__(message)
        # What the model said instead, e.g. "I couldn't find an expense in that."
        self.reply = reply


class InvalidDateError(LedgerError):
    code = "invalid_date"


class InvalidDateRangeError(LedgerError):
    code = "invalid_date_range"


class ReconcileError(LedgerError):
    code = "reconcile_failed"


class NotFoundError(LedgerError):
    code = "not_found"


class DuplicateAssetError(LedgerError):
    code = "duplicate_asset"


class InconsistentStoreError(LedgerError):
    """A failed unit could not be fully undone; the store may hold partial writes."""

    code = "store_inconsistent"
