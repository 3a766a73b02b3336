"""Dependency injection for repository layer."""

from fastapi import Depends
from sqlalchemy.orm import Session

from ..config import get_config
from ..core.movement_service import MovementService
from ..db.database import get_db
from .interfaces import RepositoryContainer
from .sqlalchemy_impl import (
    SQLAlchemyAssetRepository,
    SQLAlchemyLocationRepository,
    SQLAlchemyMovementRepository,
    SQLAlchemyUserRepository,
)


def get_repository_container(
    db: Session = Depends(get_db),
) -> RepositoryContainer:
    """
    Create and configure a repository container with SQLAlchemy implementations.

    This is the main dependency injection point for repositories.
    """
    return RepositoryContainer(
        asset_repo=SQLAlchemyAssetRepository(db),
        location_repo=SQLAlchemyLocationRepository(db),
        user_repo=SQLAlchemyUserRepository(db),
        movement_repo=SQLAlchemyMovementRepository(db),
    )


def get_movement_service(
    repos: RepositoryContainer = Depends(get_repository_container),
) -> MovementService:
    """Movement service bound to the request's repositories."""
    return MovementService(repos, ledger_config=get_config().ledger)
