from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_CURRENCY = "USD"

InstitutionType = Literal["bank", "broker", "mutual_fund", "other"]
INSTITUTION_TYPES: tuple[str, ...] = ("bank", "broker", "mutual_fund", "other")


def _default_currency(value):
    if value is None:
        return DEFAULT_CURRENCY
    if isinstance(value, str):
        return value.strip() or DEFAULT_CURRENCY
    return value


# ── Extraction candidates ──────────────────────────────────────────


class CandidateTransaction(BaseModel):
    transaction_date: str
    amount: Decimal
    currency: str = DEFAULT_CURRENCY
    category: str
    description: str = ""
    confirm: bool = False

    @field_validator("currency", mode="before")
    @classmethod
    def fill_currency(cls, value):
        return _default_currency(value)

    @field_validator("description", mode="before")
    @classmethod
    def blank_description(cls, value):
        return "" if value is None else value

    @field_validator("confirm", mode="before")
    @classmethod
    def unconfirmed_by_default(cls, value):
        return False if value is None else value


class CandidateAsset(BaseModel):
    institution_name: str
    institution_type: InstitutionType
    asset_name: str
    current_value: Decimal
    currency: str = DEFAULT_CURRENCY
    description: str | None = None
    confirm: bool = False

    @field_validator("currency", mode="before")
    @classmethod
    def fill_currency(cls, value):
        return _default_currency(value)

    @field_validator("confirm", mode="before")
    @classmethod
    def unconfirmed_by_default(cls, value):
        return False if value is None else value


class FinancialData(BaseModel):
    transactions: list[CandidateTransaction] = []
    assets: list[CandidateAsset] = []

    @field_validator("transactions", "assets", mode="before")
    @classmethod
    def null_as_empty(cls, value):
        # Models sometimes send `"assets": null` instead of leaving it out
        return [] if value is None else value

    def is_empty(self) -> bool:
        return not self.transactions and not self.assets


# ── Persisted records ──────────────────────────────────────────────


class Transaction(BaseModel):
    id: int | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    transaction_date: date
    amount: Decimal
    currency: str = DEFAULT_CURRENCY
    category: str
    description: str = ""
    confirm: bool = False


class Asset(BaseModel):
    id: int | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    institution_name: str
    institution_type: InstitutionType
    asset_name: str
    current_value: Decimal
    currency: str = DEFAULT_CURRENCY
    description: str | None = None
    confirm: bool = False
    last_updated: datetime = Field(default_factory=datetime.now)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.institution_name, self.institution_type, self.asset_name)


class AssetHistory(BaseModel):
    id: int | None = None
    asset_id: int
    value: Decimal
    currency: str
    value_date: datetime = Field(default_factory=datetime.now)


class TransactionFilter(BaseModel):
    """Optional list filters; a field left as None places no constraint."""

    confirm: bool | None = None
    start_date: date | None = None
    end_date: date | None = None


# ── Results ────────────────────────────────────────────────────────


class ReconcileFailure(BaseModel):
    candidate: CandidateAsset
    error: str


class IngestionResult(BaseModel):
    kind: Literal["transactions", "assets"]
    transactions: list[Transaction] = []
    assets: list[Asset] = []
    failures: list[ReconcileFailure] = []
    skipped_transactions: int = 0


class CategorySummary(BaseModel):
    category: str
    total_spent: Decimal


class DailySpendingSummary(BaseModel):
    transaction_date: date
    total_spent: Decimal


# ── API requests ───────────────────────────────────────────────────


class IngestRequest(BaseModel):
    line: str


class UpdateTransactionRequest(BaseModel):
    transaction_date: str
    amount: Decimal
    currency: str = DEFAULT_CURRENCY
    category: str
    description: str = ""
    confirm: bool = False

    @field_validator("currency", mode="before")
    @classmethod
    def fill_currency(cls, value):
        return _default_currency(value)


class CreateAssetRequest(CandidateAsset):
    pass


class UpdateAssetValueRequest(BaseModel):
    current_value: Decimal
    currency: str = DEFAULT_CURRENCY
    confirm: bool = False

    @field_validator("currency", mode="before")
    @classmethod
    def fill_currency(cls, value):
        return _default_currency(value)
