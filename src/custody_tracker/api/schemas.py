"""Pydantic models for API request/response validation."""

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, field_validator  # type: ignore

from ..core.enums import MovementType
from ..domain.movements import (
    AnnotationInput,
    BulkDeleteResult,
    CursorPage,
    MovementRecord,
    OffsetPage,
)
from ..domain.rules import classify_movement, select_annotation


# Base response models
class BaseResponse(BaseModel):
    """Base response model with common fields."""

    model_config = ConfigDict(from_attributes=True)


class ProblemDetails(BaseModel):
    """RFC 9457 Problem Details for HTTP APIs."""

    type: str = Field(description="A URI reference that identifies the problem type")
    title: str = Field(
        description="A short, human-readable summary of the problem type"
    )
    status: int = Field(description="The HTTP status code")
    detail: Optional[str] = Field(
        None, description="A human-readable explanation specific to this occurrence"
    )
    instance: Optional[str] = Field(
        None, description="A URI reference that identifies the specific occurrence"
    )
    code: Optional[str] = Field(None, description="Machine readable error code")


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# Movement request schemas
class AnnotationPayload(BaseModel):
    """A note for a movement in one language."""

    lang_code: str = Field(description="Language code such as en-US", min_length=2, max_length=5)
    notes: Optional[str] = Field(None, description="Free-text notes")

    def to_input(self) -> AnnotationInput:
        return AnnotationInput(lang_code=self.lang_code, notes=self.notes)


class MovementCreate(BaseModel):
    """Schema for recording a custody transfer."""

    asset_id: UUID = Field(description="Asset being moved")
    to_location_id: Optional[UUID] = Field(None, description="Destination location")
    to_user_id: Optional[UUID] = Field(None, description="Destination custodian")
    annotations: List[AnnotationPayload] = Field(default_factory=list)

    @field_validator("to_location_id", "to_user_id", mode="before")
    @classmethod
    def blank_destination_is_absent(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def annotation_inputs(self) -> List[AnnotationInput]:
        return [annotation.to_input() for annotation in self.annotations]


class MovementBulkCreate(BaseModel):
    """Schema for recording several transfers at once."""

    movements: List[MovementCreate] = Field(min_length=1)


class MovementUpdate(BaseModel):
    """Schema for amending a movement's destination or annotations."""

    to_location_id: Optional[UUID] = Field(None, description="New destination location")
    to_user_id: Optional[UUID] = Field(None, description="New destination custodian")
    annotations: List[AnnotationPayload] = Field(default_factory=list)

    @field_validator("to_location_id", "to_user_id", mode="before")
    @classmethod
    def blank_destination_is_absent(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def annotation_inputs(self) -> List[AnnotationInput]:
        return [annotation.to_input() for annotation in self.annotations]


class BulkDeleteRequest(BaseModel):
    """Schema for deleting several movements."""

    ids: List[UUID] = Field(min_length=1)


# Movement response schemas
class AnnotationResponse(BaseResponse):
    """Annotation selected for the requested language."""

    lang_code: str
    notes: Optional[str] = None


class MovementResponse(BaseResponse):
    """Schema for a movement."""

    id: UUID
    asset_id: UUID
    from_location_id: Optional[UUID] = None
    to_location_id: Optional[UUID] = None
    from_user_id: Optional[UUID] = None
    to_user_id: Optional[UUID] = None
    moved_by: UUID
    movement_type: MovementType
    movement_date: datetime
    created_at: datetime
    updated_at: datetime
    annotation: Optional[AnnotationResponse] = None

    @classmethod
    def from_record(
        cls, record: MovementRecord, lang_code: Optional[str], default_lang_code: str
    ) -> "MovementResponse":
        annotation = select_annotation(record.annotations, lang_code, default_lang_code)
        return cls(
            id=record.id,
            asset_id=record.asset_id,
            from_location_id=record.from_location_id,
            to_location_id=record.to_location_id,
            from_user_id=record.from_custodian_id,
            to_user_id=record.to_custodian_id,
            moved_by=record.moved_by,
            movement_type=classify_movement(
                record.from_location_id,
                record.from_custodian_id,
                record.to_location_id,
                record.to_custodian_id,
            ),
            movement_date=record.movement_date,
            created_at=record.created_at,
            updated_at=record.updated_at,
            annotation=(
                AnnotationResponse(lang_code=annotation.lang_code, notes=annotation.notes)
                if annotation
                else None
            ),
        )


class MovementListResponse(BaseResponse):
    """Offset-paginated movements."""

    items: List[MovementResponse]
    total: int
    limit: int
    offset: int
    current_page: int
    total_pages: int

    @classmethod
    def from_page(
        cls, page: OffsetPage, lang_code: Optional[str], default_lang_code: str
    ) -> "MovementListResponse":
        return cls(
            items=[MovementResponse.from_record(r, lang_code, default_lang_code) for r in page.items],
            total=page.total,
            limit=page.limit,
            offset=page.offset,
            current_page=page.current_page,
            total_pages=page.total_pages,
        )


class MovementCursorResponse(BaseResponse):
    """Cursor-paginated movements."""

    items: List[MovementResponse]
    limit: int
    has_next_page: bool
    next_cursor: Optional[UUID] = None

    @classmethod
    def from_page(
        cls, page: CursorPage, limit: int, lang_code: Optional[str], default_lang_code: str
    ) -> "MovementCursorResponse":
        return cls(
            items=[MovementResponse.from_record(r, lang_code, default_lang_code) for r in page.items],
            limit=limit,
            has_next_page=page.has_next_page,
            next_cursor=page.next_cursor,
        )


class MovementBulkCreateResponse(BaseResponse):
    """Movements created by a bulk request."""

    items: List[MovementResponse]
    count: int


class BulkDeleteResponse(BaseResponse):
    """Outcome of a bulk delete."""

    requested_ids: List[UUID]
    deleted_ids: List[UUID]
    missing_ids: List[UUID]

    @classmethod
    def from_result(cls, result: BulkDeleteResult) -> "BulkDeleteResponse":
        return cls(
            requested_ids=result.requested_ids,
            deleted_ids=result.deleted_ids,
            missing_ids=result.missing_ids,
        )


class CountResponse(BaseResponse):
    """Number of movements matching the filters."""

    count: int


class ExistsResponse(BaseResponse):
    """Whether a movement exists."""

    id: UUID
    exists: bool

