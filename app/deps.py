from dataclasses import dataclass

from fastapi import Request

from app.config import Settings
from app.db.repository import LedgerRepository
from app.llm.parser import FinancialParser
from app.services.ingestor import TransactionIngestor
from app.services.orchestrator import IngestionOrchestrator
from app.services.reconciler import AssetReconciler
from app.services.reports import SpendingReports


@dataclass
class Services:
    repo: LedgerRepository
    parser: FinancialParser
    reconciler: AssetReconciler
    ingestor: TransactionIngestor
    orchestrator: IngestionOrchestrator
    reports: SpendingReports


def build_services(
    settings: Settings,
    repo: LedgerRepository | None = None,
    parser: FinancialParser | None = None,
) -> Services:
    """Construct the long-lived service objects once at process start."""
    repo = repo or LedgerRepository(settings.db_path)
    parser = parser or FinancialParser(
        api_key=settings.openai_api_key,
        model=settings.llm_model,
        base_url=settings.openai_base_url,
        timeout=settings.llm_timeout,
    )
    reconciler = AssetReconciler(repo)
    ingestor = TransactionIngestor(repo)
    return Services(
        repo=repo,
        parser=parser,
        reconciler=reconciler,
        ingestor=ingestor,
        orchestrator=IngestionOrchestrator(parser, reconciler, ingestor),
        reports=SpendingReports(repo),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
