from decimal import Decimal

from loguru import logger

from app.db.repository import LedgerRepository
from app.errors import (
    DuplicateAssetError,
    InconsistentStoreError,
    NotFoundError,
    ReconcileError,
)
from app.models.schemas import Asset, CandidateAsset


class AssetReconciler:
    """Matches an extracted asset against stored assets and records its value.

    Matching is exact and case-sensitive on (institution_name,
    institution_type, asset_name): "HDFC" and "Hdfc" are different assets.
    Every create or value change appends one history entry in the same
    atomic unit.
    """

    def __init__(self, repo: LedgerRepository):
        self.repo = repo

    def reconcile(self, candidate: CandidateAsset) -> Asset:
        try:
            with self.repo.atomic():
                existing = self.repo.get_asset_by_key(
                    candidate.institution_name,
                    candidate.institution_type,
                    candidate.asset_name,
                )
                if existing is not None:
                    asset = self.repo.update_asset_value(
                        existing.id,
                        candidate.current_value,
                        candidate.currency,
                        candidate.confirm,
                    )
                    action = "Updated"
                else:
                    asset = self.repo.create_asset(
                        Asset(**candidate.model_dump())
                    )
                    action = "Created"
                self.repo.append_asset_history(
                    asset.id, candidate.current_value, candidate.currency
                )
                asset = self._verified(asset.id)
        except (ReconcileError, InconsistentStoreError):
            raise
        except Exception as e:
            logger.error("Reconcile failed for {}: {}", _label(candidate), e)
            raise ReconcileError(f"Could not save asset {_label(candidate)}: {e}") from e

        logger.info(
            "{} asset #{} ({}) = {} {}",
            action, asset.id, _label(candidate), asset.current_value, asset.currency,
        )
        return asset

    def create(self, candidate: CandidateAsset) -> Asset:
        """Store a new asset, refusing one whose key already exists."""
        try:
            with self.repo.atomic():
                asset = self.repo.create_asset(Asset(**candidate.model_dump()))
                self.repo.append_asset_history(
                    asset.id, candidate.current_value, candidate.currency
                )
                asset = self._verified(asset.id)
        except (DuplicateAssetError, ReconcileError, InconsistentStoreError):
            raise
        except Exception as e:
            logger.error("Create failed for {}: {}", _label(candidate), e)
            raise ReconcileError(f"Could not save asset {_label(candidate)}: {e}") from e

        logger.info("Created asset #{} ({})", asset.id, _label(candidate))
        return asset

    def revalue(
        self, asset_id: int, value: Decimal, currency: str, confirm: bool
    ) -> Asset:
        """Set a known asset's value directly and record it in its history."""
        try:
            with self.repo.atomic():
                self.repo.update_asset_value(asset_id, value, currency, confirm)
                self.repo.append_asset_history(asset_id, value, currency)
                asset = self._verified(asset_id)
        except (NotFoundError, ReconcileError, InconsistentStoreError):
            raise
        except Exception as e:
            logger.error("Revalue failed for asset #{}: {}", asset_id, e)
            raise ReconcileError(f"Could not update asset #{asset_id}: {e}") from e

        logger.info("Revalued asset #{} = {} {}", asset_id, value, currency)
        return asset

    def _verified(self, asset_id: int) -> Asset:
        asset = self.repo.get_asset(asset_id)
        latest = self.repo.latest_asset_history(asset_id)
        if (
            asset is None
            or latest is None
            or latest.value != asset.current_value
            or latest.currency != asset.currency
        ):
            raise ReconcileError(
                f"Asset #{asset_id} history does not match its current value"
            )
        return asset


def _label(candidate: CandidateAsset) -> str:
    return f"{candidate.institution_name} / {candidate.asset_name}"
