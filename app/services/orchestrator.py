from loguru import logger

from app.errors import NoFinancialDataError, ReconcileError
from app.llm.parser import FinancialParser
from app.models.schemas import FinancialData, IngestionResult, ReconcileFailure
from app.services.ingestor import TransactionIngestor
from app.services.reconciler import AssetReconciler


class IngestionOrchestrator:
    """Single entry point: free text in, persisted transactions or assets out.

    Assets take priority. When an extraction carries assets, every asset
    candidate is reconciled and any transactions in the same message are
    left out. Otherwise the transactions are ingested as one batch.
    Extraction errors are raised unchanged and nothing is retried.
    """

    def __init__(
        self,
        parser: FinancialParser,
        reconciler: AssetReconciler,
        ingestor: TransactionIngestor,
    ):
        self.parser = parser
        self.reconciler = reconciler
        self.ingestor = ingestor

    def process(self, raw_text: str, timeout: float | None = None) -> IngestionResult:
        data = self.parser.parse(raw_text, timeout=timeout)

        if data.assets:
            return self._process_assets(data)

        if data.transactions:
            created = self.ingestor.ingest(data.transactions)
            return IngestionResult(kind="transactions", transactions=created)

        raise NoFinancialDataError("No financial data found in message")

    def _process_assets(self, data: FinancialData) -> IngestionResult:
        result = IngestionResult(kind="assets")
        first_error: ReconcileError | None = None

        for candidate in data.assets:
            try:
                result.assets.append(self.reconciler.reconcile(candidate))
            except ReconcileError as e:
                first_error = first_error or e
                result.failures.append(ReconcileFailure(candidate=candidate, error=e.message))

        if not result.assets:
            raise first_error

        if data.transactions:
            result.skipped_transactions = len(data.transactions)
            logger.warning(
                "Skipped {} transaction(s) extracted alongside assets",
                len(data.transactions),
            )
        if result.failures:
            logger.warning(
                "{} of {} asset(s) could not be saved",
                len(result.failures), len(data.assets),
            )
        return result
