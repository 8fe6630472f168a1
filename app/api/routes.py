from datetime import date

from fastapi import APIRouter, Depends
from loguru import logger

from app.deps import Services, get_services
from app.errors import NotFoundError
from app.models.schemas import (
    Asset,
    AssetHistory,
    CategorySummary,
    CreateAssetRequest,
    DailySpendingSummary,
    IngestionResult,
    IngestRequest,
    Transaction,
    TransactionFilter,
    UpdateAssetValueRequest,
    UpdateTransactionRequest,
)
from app.services.ingestor import parse_date
from app.services.reports import validate_date_range

router = APIRouter()


@router.get("/")
def index():
    return {"message": "Welcome to Ledger. POST to /api/transactions to save expenses."}


# ── Transactions ───────────────────────────────────────────────────


@router.post("/api/transactions", response_model=IngestionResult, status_code=201)
def create_transactions(request: IngestRequest, services: Services = Depends(get_services)):
    logger.info("Ingesting line: {}", request.line)
    return services.orchestrator.process(request.line)


@router.get("/api/transactions", response_model=list[Transaction])
def list_transactions(
    confirm: bool | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    services: Services = Depends(get_services),
):
    validate_date_range(start_date, end_date)
    filters = TransactionFilter(confirm=confirm, start_date=start_date, end_date=end_date)
    return services.repo.list_transactions(filters)


@router.get("/api/transactions/{transaction_id}", response_model=Transaction)
def get_transaction(transaction_id: int, services: Services = Depends(get_services)):
    transaction = services.repo.get_transaction(transaction_id)
    if transaction is None:
        raise NotFoundError(f"Transaction #{transaction_id} not found")
    return transaction


@router.put("/api/transactions/{transaction_id}", response_model=Transaction)
def update_transaction(
    transaction_id: int,
    request: UpdateTransactionRequest,
    services: Services = Depends(get_services),
):
    existing = services.repo.get_transaction(transaction_id)
    if existing is None:
        raise NotFoundError(f"Transaction #{transaction_id} not found")

    fields = request.model_dump()
    fields["transaction_date"] = parse_date(request.transaction_date)
    replacement = existing.model_copy(update=fields)
    updated = services.repo.update_transaction(transaction_id, replacement)
    logger.info("Updated transaction #{}", transaction_id)
    return updated


@router.delete("/api/transactions/{transaction_id}")
def delete_transaction(transaction_id: int, services: Services = Depends(get_services)):
    services.repo.delete_transaction(transaction_id)
    logger.info("Deleted transaction #{}", transaction_id)
    return {"detail": "Transaction deleted"}


# ── Reports ────────────────────────────────────────────────────────


@router.get("/api/reports/top-categories", response_model=list[CategorySummary])
def top_categories(
    start_date: date, end_date: date, services: Services = Depends(get_services)
):
    return services.reports.top_categories(start_date, end_date)


@router.get("/api/reports/daily-spending", response_model=list[DailySpendingSummary])
def daily_spending(
    start_date: date, end_date: date, services: Services = Depends(get_services)
):
    return services.reports.daily_spending(start_date, end_date)


# ── Assets ─────────────────────────────────────────────────────────


@router.post("/api/assets", response_model=Asset, status_code=201)
def create_asset(request: CreateAssetRequest, services: Services = Depends(get_services)):
    return services.reconciler.create(request)


@router.get("/api/assets", response_model=list[Asset])
def list_assets(confirm: bool | None = None, services: Services = Depends(get_services)):
    return services.repo.list_assets(confirm=confirm)


@router.get("/api/assets/{asset_id}", response_model=Asset)
def get_asset(asset_id: int, services: Services = Depends(get_services)):
    asset = services.repo.get_asset(asset_id)
    if asset is None:
        raise NotFoundError(f"Asset #{asset_id} not found")
    return asset


@router.put("/api/assets/{asset_id}", response_model=Asset)
def update_asset_value(
    asset_id: int,
    request: UpdateAssetValueRequest,
    services: Services = Depends(get_services),
):
    return services.reconciler.revalue(
        asset_id, request.current_value, request.currency, request.confirm
    )


@router.delete("/api/assets/{asset_id}")
def delete_asset(asset_id: int, services: Services = Depends(get_services)):
    services.repo.delete_asset(asset_id)
    logger.info("Deleted asset #{} and its history", asset_id)
    return {"detail": "Asset deleted"}


@router.get("/api/assets/{asset_id}/history", response_model=list[AssetHistory])
def get_asset_history(asset_id: int, services: Services = Depends(get_services)):
    if services.repo.get_asset(asset_id) is None:
        raise NotFoundError(f"Asset #{asset_id} not found")
    return services.repo.get_asset_history(asset_id)
