"""Asset movement API endpoints."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, Response, status

from ..config import get_config
from ..core.enums import CursorDirection, SortField, SortOrder
from ..core.movement_service import MovementService, TransferRequest
from ..domain.movements import CursorQuery, ListQuery, MovementFilters
from ..domain.rules import parse_filter_date
from ..domain.statistics import MovementStatistics
from ..repositories.dependencies import get_movement_service
from .schemas import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    CountResponse,
    ExistsResponse,
    MovementBulkCreate,
    MovementBulkCreateResponse,
    MovementCreate,
    MovementCursorResponse,
    MovementListResponse,
    MovementResponse,
    MovementUpdate,
    ProblemDetails,
)

router = APIRouter(prefix="/v1/asset-movements", tags=["asset-movements"])

PROBLEM = {"model": ProblemDetails}


def get_lang_code(
    lang: Optional[str] = Query(None, max_length=5, description="Annotation language"),
    accept_language: Optional[str] = Header(None),
) -> Optional[str]:
    """Requested annotation language: ``lang`` query first, then Accept-Language."""
    if lang:
        return lang
    if accept_language:
        # "en-US,en;q=0.9" -> "en-US"
        first = accept_language.split(",", 1)[0].split(";", 1)[0].strip()
        return first[:5] or None
    return None


def get_acting_user(x_user_id: UUID = Header(..., alias="X-User-Id")) -> UUID:
    """The user recording the movement."""
    return x_user_id


def get_filters(
    search: Optional[str] = Query(None, description="Matches asset tag or serial number"),
    asset_id: Optional[UUID] = Query(None),
    from_location_id: Optional[UUID] = Query(None),
    to_location_id: Optional[UUID] = Query(None),
    from_user_id: Optional[UUID] = Query(None),
    to_user_id: Optional[UUID] = Query(None),
    moved_by: Optional[UUID] = Query(None),
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive"),
) -> MovementFilters:
    return MovementFilters(
        search=search,
        asset_id=asset_id,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        from_custodian_id=from_user_id,
        to_custodian_id=to_user_id,
        moved_by=moved_by,
        date_from=parse_filter_date(date_from, "date_from"),
        date_to=parse_filter_date(date_to, "date_to"),
    )


def get_history_filters(
    search: Optional[str] = Query(None, description="Matches asset tag or serial number"),
    from_location_id: Optional[UUID] = Query(None),
    to_location_id: Optional[UUID] = Query(None),
    from_user_id: Optional[UUID] = Query(None),
    to_user_id: Optional[UUID] = Query(None),
    moved_by: Optional[UUID] = Query(None),
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive"),
) -> MovementFilters:
    """Filters for one asset's history; the asset comes from the path."""
    return get_filters(
        search=search,
        asset_id=None,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        moved_by=moved_by,
        date_from=date_from,
        date_to=date_to,
    )


def _default_lang() -> str:
    return get_config().ledger.default_lang_code


@router.post(
    "",
    response_model=MovementResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        201: {"description": "Movement recorded"},
        400: {**PROBLEM, "description": "Invalid or no-op destination"},
        404: {**PROBLEM, "description": "Asset, location or user not found"},
        409: {**PROBLEM, "description": "Asset state changed concurrently"},
        422: {**PROBLEM, "description": "Validation error"},
    },
)
async def create_movement(
    payload: MovementCreate,
    moved_by: UUID = Depends(get_acting_user),
    lang_code: Optional[str] = Depends(get_lang_code),
    service: MovementService = Depends(get_movement_service),
) -> MovementResponse:
    """
    Record a custody transfer.

    Exactly one of ``to_location_id`` and ``to_user_id`` must be set. The
    source location and custodian are taken from the asset's current state.
    """
    record = await service.create(
        asset_id=payload.asset_id,
        to_location_id=payload.to_location_id,
        to_custodian_id=payload.to_user_id,
        moved_by=moved_by,
        annotations=payload.annotation_inputs(),
    )
    return MovementResponse.from_record(record, lang_code, _default_lang())


@router.post(
    "/bulk",
    response_model=MovementBulkCreateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {**PROBLEM, "description": "Invalid or no-op destination"},
        404: {**PROBLEM, "description": "Asset, location or user not found"},
        409: {**PROBLEM, "description": "Asset state changed concurrently"},
        422: {**PROBLEM, "description": "Validation error or duplicate asset"},
    },
)
async def bulk_create_movements(
    payload: MovementBulkCreate,
    moved_by: UUID = Depends(get_acting_user),
    lang_code: Optional[str] = Depends(get_lang_code),
    service: MovementService = Depends(get_movement_service),
) -> MovementBulkCreateResponse:
    """Record several transfers; either all are recorded or none."""
    requests = [
        TransferRequest(
            asset_id=item.asset_id,
            to_location_id=item.to_location_id,
            to_custodian_id=item.to_user_id,
            annotations=item.annotation_inputs(),
        )
        for item in payload.movements
    ]
    records = await service.bulk_create(requests, moved_by)
    default_lang = _default_lang()
    return MovementBulkCreateResponse(
        items=[MovementResponse.from_record(r, lang_code, default_lang) for r in records],
        count=len(records),
    )


@router.get(
    "",
    response_model=MovementListResponse,
    responses={422: {**PROBLEM, "description": "Invalid filter"}},
)
async def list_movements(
    filters: MovementFilters = Depends(get_filters),
    sort_by: SortField = Query(SortField.MOVEMENT_DATE),
    sort_order: SortOrder = Query(SortOrder.DESC),
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    lang_code: Optional[str] = Depends(get_lang_code),
    service: MovementService = Depends(get_movement_service),
) -> MovementListResponse:
    """List movements with offset pagination, newest first by default."""
    query = ListQuery(
        filters=filters,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=service.clamp_limit(limit),
        offset=offset,
    )
    page = await service.list_paginated(query)
    return MovementListResponse.from_page(page, lang_code, _default_lang())


@router.get(
    "/cursor",
    response_model=MovementCursorResponse,
    responses={
        404: {**PROBLEM, "description": "Cursor movement not found"},
        422: {**PROBLEM, "description": "Invalid filter"},
    },
)
async def list_movements_by_cursor(
    filters: MovementFilters = Depends(get_filters),
    cursor: Optional[UUID] = Query(None, description="Boundary movement id"),
    direction: CursorDirection = Query(CursorDirection.BEFORE),
    limit: Optional[int] = Query(None, ge=1),
    lang_code: Optional[str] = Depends(get_lang_code),
    service: MovementService = Depends(get_movement_service),
) -> MovementCursorResponse:
    """List movements strictly before or after a boundary movement, newest first."""
    query = CursorQuery(
        filters=filters, cursor=cursor, direction=direction, limit=service.clamp_limit(limit)
    )
    page = await service.list_by_cursor(query)
    return MovementCursorResponse.from_page(page, query.limit, lang_code, _default_lang())


@router.get("/count", response_model=CountResponse)
async def count_movements(
    filters: MovementFilters = Depends(get_filters),
    service: MovementService = Depends(get_movement_service),
) -> CountResponse:
    """Count movements matching the filters."""
    return CountResponse(count=await service.count(filters))


@router.get("/statistics", response_model=MovementStatistics)
async def get_movement_statistics(
    service: MovementService = Depends(get_movement_service),
) -> MovementStatistics:
    """Aggregate statistics over the whole ledger."""
    return await service.get_statistics()


@router.get("/check/{movement_id}", response_model=ExistsResponse)
async def check_movement_exists(
    movement_id: UUID,
    service: MovementService = Depends(get_movement_service),
) -> ExistsResponse:
    """Check whether a movement exists."""
    return ExistsResponse(id=movement_id, exists=await service.exists(movement_id))


@router.get(
    "/asset/{asset_id}",
    response_model=List[MovementResponse],
    responses={404: {**PROBLEM, "description": "Asset not found"}},
)
async def list_asset_movements(
    asset_id: UUID,
    filters: MovementFilters = Depends(get_history_filters),
    sort_by: SortField = Query(SortField.MOVEMENT_DATE),
    sort_order: SortOrder = Query(SortOrder.DESC),
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    lang_code: Optional[str] = Depends(get_lang_code),
    service: MovementService = Depends(get_movement_service),
) -> List[MovementResponse]:
    """Movement history of one asset."""
    query = ListQuery(
        filters=filters,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=service.clamp_limit(limit),
        offset=offset,
    )
    records = await service.list_by_asset(asset_id, query)
    default_lang = _default_lang()
    return [MovementResponse.from_record(r, lang_code, default_lang) for r in records]


@router.get(
    "/{movement_id}",
    response_model=MovementResponse,
    responses={404: {**PROBLEM, "description": "Movement not found"}},
)
async def get_movement(
    movement_id: UUID,
    lang_code: Optional[str] = Depends(get_lang_code),
    service: MovementService = Depends(get_movement_service),
) -> MovementResponse:
    """Get a single movement."""
    record = await service.get(movement_id)
    return MovementResponse.from_record(record, lang_code, _default_lang())


@router.patch(
    "/{movement_id}",
    response_model=MovementResponse,
    responses={
        400: {**PROBLEM, "description": "Invalid or no-op destination"},
        404: {**PROBLEM, "description": "Movement, location or user not found"},
        409: {**PROBLEM, "description": "Movement superseded or duplicate language"},
        422: {**PROBLEM, "description": "Validation error"},
    },
)
async def amend_movement(
    movement_id: UUID,
    payload: MovementUpdate,
    lang_code: Optional[str] = Depends(get_lang_code),
    service: MovementService = Depends(get_movement_service),
) -> MovementResponse:
    """
    Amend a movement's destination and/or annotations.

    The destination can only change while the movement is the asset's latest.
    """
    record = await service.amend(
        movement_id,
        to_location_id=payload.to_location_id,
        to_custodian_id=payload.to_user_id,
        annotations=payload.annotation_inputs(),
    )
    return MovementResponse.from_record(record, lang_code, _default_lang())


@router.delete(
    "/{movement_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {**PROBLEM, "description": "Movement not found"}},
)
async def delete_movement(
    movement_id: UUID,
    service: MovementService = Depends(get_movement_service),
) -> Response:
    """Delete a movement and its annotations."""
    await service.delete(movement_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete_movements(
    payload: BulkDeleteRequest,
    service: MovementService = Depends(get_movement_service),
) -> BulkDeleteResponse:
    """Delete several movements; ids that do not exist are reported as missing."""
    result = await service.bulk_delete(payload.ids)
    return BulkDeleteResponse.from_result(result)
