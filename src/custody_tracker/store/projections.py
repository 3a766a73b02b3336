"""Asset-state projection maintained alongside the movement ledger.

``assets.location_id`` and ``assets.custodian_id`` always equal the state after
the asset's latest movement. The projection is applied inside the same
transaction as the ledger write, as a conditional update on the state the
movement was derived from.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..db.models import Asset
from ..domain.errors import ConflictError
from ..domain.movements import AssetState
from ..utils.logging_config import get_logger

logger = get_logger("ledger")


def _matches(column, value: Optional[UUID]):
    return column.is_(None) if value is None else column == value


class AssetStateProjection:
    """Compare-and-set of an asset's custody state."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def apply(self, expected: AssetState, target: AssetState) -> None:
        """
        Move an asset from ``expected`` to ``target``.

        Raises:
            ConflictError: the asset no longer has the expected state
        """
        if expected.asset_id != target.asset_id:
            raise ValueError("projection must target the asset it was derived from")

        result = self.db.execute(
            update(Asset)
            .where(
                Asset.id == expected.asset_id,
                _matches(Asset.location_id, expected.location_id),
                _matches(Asset.custodian_id, expected.custodian_id),
            )
            .values(location_id=target.location_id, custodian_id=target.custodian_id)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            logger.warning(
                f"Stale asset state for {expected.asset_id}: expected "
                f"location={expected.location_id} custodian={expected.custodian_id}"
            )
            raise ConflictError(
                "asset state changed since the movement was validated",
                asset_id=expected.asset_id,
            )

        logger.debug(
            f"Asset {target.asset_id} now at location={target.location_id} "
            f"custodian={target.custodian_id}"
        )
