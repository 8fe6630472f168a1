from datetime import date

from app.db.repository import LedgerRepository
from app.errors import InvalidDateRangeError
from app.models.schemas import CategorySummary, DailySpendingSummary

TOP_CATEGORIES_LIMIT = 5


def validate_date_range(start_date: date | None, end_date: date | None) -> None:
    """Reject a range whose start falls after its end. Open ends are allowed."""
    if start_date is not None and end_date is not None and start_date > end_date:
        raise InvalidDateRangeError("start date must be on or before end date")


class SpendingReports:
    def __init__(self, repo: LedgerRepository):
        self.repo = repo

    def top_categories(
        self, start_date: date, end_date: date, limit: int = TOP_CATEGORIES_LIMIT
    ) -> list[CategorySummary]:
        validate_date_range(start_date, end_date)
        return self.repo.sum_by_category(start_date, end_date, limit=limit)

    def daily_spending(self, start_date: date, end_date: date) -> list[DailySpendingSummary]:
        validate_date_range(start_date, end_date)
        return self.repo.sum_by_day(start_date, end_date)
