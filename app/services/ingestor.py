import re
from datetime import date
from typing import Sequence

from loguru import logger

from app.db.repository import LedgerRepository
from app.errors import InvalidDateError
from app.models.schemas import CandidateTransaction, Transaction

_ISO_DATE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def parse_date(value: str) -> date:
    """Parse a strict YYYY-MM-DD calendar date."""
    if not isinstance(value, str) or not _ISO_DATE.fullmatch(value):
        raise InvalidDateError(f"Invalid date {value!r}, expected YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise InvalidDateError(f"Invalid date {value!r}: {e}") from e


class TransactionIngestor:
    def __init__(self, repo: LedgerRepository):
        self.repo = repo

    def ingest(self, candidates: Sequence[CandidateTransaction]) -> list[Transaction]:
        # Validate the whole batch before writing anything
        rows = [
            Transaction(
                transaction_date=parse_date(c.transaction_date),
                amount=c.amount,
                currency=c.currency,
                category=c.category,
                description=c.description,
                confirm=c.confirm,
            )
            for c in candidates
        ]

        with self.repo.atomic():
            created = [self.repo.create_transaction(row) for row in rows]

        for txn in created:
            logger.info(
                "Created transaction #{}: {} {} on {} ({})",
                txn.id, txn.amount, txn.currency, txn.category, txn.transaction_date,
            )
        return created
