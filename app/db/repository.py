import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Callable

from loguru import logger
from tinydb import Query, TinyDB
from tinydb.table import Document, Table

from app.errors import DuplicateAssetError, InconsistentStoreError, NotFoundError
from app.models.schemas import (
    Asset,
    AssetHistory,
    CategorySummary,
    DailySpendingSummary,
    Transaction,
    TransactionFilter,
)


def _replace_with(data: dict) -> Callable[[dict], None]:
    def transform(doc: dict) -> None:
        doc.clear()
        doc.update(data)

    return transform


class LedgerRepository:
    """TinyDB-backed store for transactions, assets and asset value history.

    TinyDB has no transactions and is not thread-safe, so every call runs
    under one re-entrant lock, and `atomic()` keeps a journal of inverse
    operations that is replayed if the block raises.
    """

    def __init__(self, db_path: str = "ledger.json", storage=None):
        if storage is not None:
            self.db = TinyDB(storage=storage)
        else:
            self.db = TinyDB(db_path)
        self.transactions = self.db.table("transactions")
        self.assets = self.db.table("assets")
        self.history = self.db.table("asset_history")
        self._lock = threading.RLock()
        self._journal: list[Callable[[], None]] | None = None

    def close(self) -> None:
        self.db.close()

    # ── Atomic units ───────────────────────────────────────────────

    @contextmanager
    def atomic(self):
        with self._lock:
            if self._journal is not None:
                # Nested unit joins the outer one
                yield
                return

            self._journal = []
            try:
                yield
            except Exception as e:
                self._rollback(e)
                raise
            finally:
                self._journal = None

    def _rollback(self, error: Exception) -> None:
        journal = self._journal or []
        logger.warning("Rolling back {} write(s)", len(journal))
        failed = 0
        for undo in reversed(journal):
            try:
                undo()
            except Exception as e:
                failed += 1
                logger.error("Rollback step failed: {}", e)

        if failed:
            raise InconsistentStoreError(
                f"{failed} of {len(journal)} write(s) could not be undone after "
                f"\"{error}\"; the store may be inconsistent"
            ) from error

    def _insert(self, table: Table, data: dict) -> int:
        doc_id = table.insert(data)
        if self._journal is not None:
            self._journal.append(lambda: table.remove(doc_ids=[doc_id]))
        return doc_id

    def _update(self, table: Table, doc_id: int, updates: dict) -> None:
        before = dict(table.get(doc_id=doc_id))
        table.update(updates, doc_ids=[doc_id])
        if self._journal is not None:
            self._journal.append(
                lambda: table.update(_replace_with(before), doc_ids=[doc_id])
            )

    def _remove(self, table: Table, doc_ids: list[int]) -> None:
        removed = [table.get(doc_id=doc_id) for doc_id in doc_ids]
        table.remove(doc_ids=doc_ids)
        if self._journal is not None:
            for doc in removed:
                self._journal.append(
                    lambda doc=doc: table.insert(Document(dict(doc), doc_id=doc.doc_id))
                )

    # ── Transactions ───────────────────────────────────────────────

    def create_transaction(self, transaction: Transaction) -> Transaction:
        data = transaction.model_dump(mode="json", exclude={"id"})
        with self._lock:
            doc_id = self._insert(self.transactions, data)
        return transaction.model_copy(update={"id": doc_id})

    def get_transaction(self, id: int) -> Transaction | None:
        with self._lock:
            doc = self.transactions.get(doc_id=id)
        if doc is None:
            return None
        return Transaction(id=doc.doc_id, **doc)

    def list_transactions(
        self, filters: TransactionFilter | None = None
    ) -> list[Transaction]:
        filters = filters or TransactionFilter()
        Txn = Query()
        cond = Txn.noop()
        if filters.confirm is not None:
            cond &= Txn.confirm == filters.confirm
        if filters.start_date is not None:
            cond &= Txn.transaction_date >= filters.start_date.isoformat()
        if filters.end_date is not None:
            cond &= Txn.transaction_date <= filters.end_date.isoformat()

        with self._lock:
            docs = self.transactions.search(cond)
        items = [Transaction(id=doc.doc_id, **doc) for doc in docs]
        items.sort(key=lambda t: (t.created_at, t.id), reverse=True)
        return items

    def update_transaction(self, id: int, transaction: Transaction) -> Transaction:
        with self._lock:
            doc = self.transactions.get(doc_id=id)
            if doc is None:
                raise NotFoundError(f"Transaction #{id} not found")
            data = transaction.model_dump(mode="json", exclude={"id", "created_at"})
            self._update(self.transactions, id, data)
        return self.get_transaction(id)

    def delete_transaction(self, id: int) -> None:
        with self._lock:
            if self.transactions.get(doc_id=id) is None:
                raise NotFoundError(f"Transaction #{id} not found")
            self._remove(self.transactions, [id])

    # ── Assets ─────────────────────────────────────────────────────

    def get_asset_by_key(
        self, institution_name: str, institution_type: str, asset_name: str
    ) -> Asset | None:
        A = Query()
        with self._lock:
            docs = self.assets.search(
                (A.institution_name == institution_name)
                & (A.institution_type == institution_type)
                & (A.asset_name == asset_name)
            )
        if not docs:
            return None
        return Asset(id=docs[0].doc_id, **docs[0])

    def create_asset(self, asset: Asset) -> Asset:
        data = asset.model_dump(mode="json", exclude={"id"})
        with self._lock:
            if self.get_asset_by_key(*asset.key) is not None:
                raise DuplicateAssetError(
                    "Asset already exists: {} / {} / {}".format(*asset.key)
                )
            doc_id = self._insert(self.assets, data)
        return asset.model_copy(update={"id": doc_id})

    def get_asset(self, id: int) -> Asset | None:
        with self._lock:
            doc = self.assets.get(doc_id=id)
        if doc is None:
            return None
        return Asset(id=doc.doc_id, **doc)

    def list_assets(self, confirm: bool | None = None) -> list[Asset]:
        with self._lock:
            if confirm is None:
                docs = self.assets.all()
            else:
                docs = self.assets.search(Query().confirm == confirm)
        return [Asset(id=doc.doc_id, **doc) for doc in docs]

    def update_asset_value(
        self, id: int, value: Decimal, currency: str, confirm: bool
    ) -> Asset:
        with self._lock:
            if self.assets.get(doc_id=id) is None:
                raise NotFoundError(f"Asset #{id} not found")
            self._update(
                self.assets,
                id,
                {
                    "current_value": str(value),
                    "currency": currency,
                    "confirm": confirm,
                    "last_updated": datetime.now().isoformat(),
                },
            )
        return self.get_asset(id)

    def set_asset_confirm(self, id: int, confirm: bool) -> Asset:
        with self._lock:
            if self.assets.get(doc_id=id) is None:
                raise NotFoundError(f"Asset #{id} not found")
            self._update(self.assets, id, {"confirm": confirm})
        return self.get_asset(id)

    def delete_asset(self, id: int) -> None:
        """Delete an asset together with its whole value history."""
        with self.atomic():
            if self.assets.get(doc_id=id) is None:
                raise NotFoundError(f"Asset #{id} not found")
            history_ids = [
                doc.doc_id for doc in self.history.search(Query().asset_id == id)
            ]
            if history_ids:
                self._remove(self.history, history_ids)
            self._remove(self.assets, [id])

    # ── Asset history ──────────────────────────────────────────────

    def append_asset_history(
        self, asset_id: int, value: Decimal, currency: str
    ) -> AssetHistory:
        entry = AssetHistory(asset_id=asset_id, value=value, currency=currency)
        with self._lock:
            if self.assets.get(doc_id=asset_id) is None:
                raise NotFoundError(f"Asset #{asset_id} not found")
            doc_id = self._insert(
                self.history, entry.model_dump(mode="json", exclude={"id"})
            )
        return entry.model_copy(update={"id": doc_id})

    def get_asset_history(self, asset_id: int) -> list[AssetHistory]:
        with self._lock:
            docs = self.history.search(Query().asset_id == asset_id)
        docs.sort(key=lambda doc: doc.doc_id)
        return [AssetHistory(id=doc.doc_id, **doc) for doc in docs]

    def latest_asset_history(self, asset_id: int) -> AssetHistory | None:
        entries = self.get_asset_history(asset_id)
        return entries[-1] if entries else None

    # ── Aggregates ─────────────────────────────────────────────────

    def _in_range(self, start_date: date, end_date: date) -> list[Transaction]:
        return self.list_transactions(
            TransactionFilter(start_date=start_date, end_date=end_date)
        )

    def sum_by_category(
        self, start_date: date, end_date: date, limit: int | None = None
    ) -> list[CategorySummary]:
        totals: dict[str, Decimal] = defaultdict(Decimal)
        for txn in self._in_range(start_date, end_date):
            totals[txn.category] += txn.amount

        rows = sorted(totals.items(), key=lambda item: item[1], reverse=True)
        if limit is not None:
            rows = rows[:limit]
        return [CategorySummary(category=c, total_spent=t) for c, t in rows]

    def sum_by_day(self, start_date: date, end_date: date) -> list[DailySpendingSummary]:
        totals: dict[date, Decimal] = defaultdict(Decimal)
        for txn in self._in_range(start_date, end_date):
            totals[txn.transaction_date] += txn.amount

        return [
            DailySpendingSummary(transaction_date=day, total_spent=total)
            for day, total in sorted(totals.items())
        ]
