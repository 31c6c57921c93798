"""
Request models for inbound calendar and pregnancy operations.

Every date that reaches the services passes through one of these models, so
ISO-8601 strings, ``date`` and midnight ``datetime`` values all end up as
``datetime.date``. Anything else is rejected.
"""
from datetime import date
from typing import Any, Dict, List, Optional, Type, TypeVar
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from src.models.event import EventKind
from src.services.constants import (
    MAX_CYCLE_DURATION,
    MAX_DETAIL_INTENSITY,
    MIN_CYCLE_DURATION,
    MIN_DETAIL_INTENSITY,
)
from src.services.exceptions import ValidationError

class _Request(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

class DateRangeQuery(_Request):
    """Calendar window query."""
    start: date
    end: date

    @model_validator(mode="after")
    def check_order(self) -> "DateRangeQuery":
        if self.end < self.start:
            raise ValueError("end must not be before start")
        return self

class PregnancyCalculationRequest(_Request):
    """Due-date calculation input."""
    last_menses_date: date
    duration_period: int = Field(..., ge=MIN_CYCLE_DURATION, le=MAX_CYCLE_DURATION)

class PregnancySaveRequest(_Request):
    """Dates produced by a calculation and confirmed by the subject."""
    childbirthdate: date
    ovulation_date: date

    @model_validator(mode="after")
    def check_order(self) -> "PregnancySaveRequest":
        if self.childbirthdate < self.ovulation_date:
            raise ValueError("childbirthdate must not be before ovulation_date")
        return self

class PregnancyTerminationRequest(_Request):
    """Termination input; a missing date means today."""
    pregnancy_ended_date: Optional[date] = None

class PeriodDateRequest(_Request):
    """Single date for starting or ending a period."""
    day: date = Field(..., alias="date")

class DetailSelection(_Request):
    """A detail type ticked, or unticked, on a symptoms, drugs or moods event."""
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    detail_type_id: int = Field(..., alias="detailTypeId")
    value: Optional[int] = Field(None, ge=MIN_DETAIL_INTENSITY, le=MAX_DETAIL_INTENSITY)
    selected: bool = True

def _check_unique(details: List[DetailSelection]) -> List[DetailSelection]:
    seen = set()
    for detail in details:
        if detail.detail_type_id in seen:
            raise ValueError(f"detail type {detail.detail_type_id} listed more than once")
        seen.add(detail.detail_type_id)
    return details

class EventWriteRequest(_Request):
    """User-entered calendar event."""
    kind: EventKind
    beginning: date
    ending: Optional[date] = None
    value: Optional[float] = None
    details: List[DetailSelection] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_event(self) -> "EventWriteRequest":
        if self.kind.is_calculated:
            raise ValueError(f"{self.kind.value} events are calculated and cannot be stored")
        if self.ending is not None and self.ending < self.beginning:
            raise ValueError("ending must not be before beginning")
        if self.details and not self.kind.has_details:
            raise ValueError(f"{self.kind.value} events have no details")
        _check_unique(self.details)
        return self

class EventUpdateRequest(_Request):
    """Partial update of a stored event; ``details`` replaces the listed selections only."""
    beginning: Optional[date] = None
    ending: Optional[date] = None
    value: Optional[float] = None
    details: Optional[List[DetailSelection]] = None

    @field_validator("details")
    @classmethod
    def check_details(cls, details: Optional[List[DetailSelection]]) -> Optional[List[DetailSelection]]:
        return _check_unique(details) if details is not None else None

class DetailTypesQuery(_Request):
    """Detail type lookup for one event kind, given by name or typology id."""
    kind: EventKind

    @field_validator("kind", mode="before")
    @classmethod
    def kind_from_type_id(cls, value: Any) -> Any:
        if isinstance(value, int) or (isinstance(value, str) and value.isdigit()):
            return EventKind.from_type_id(int(value))
        return value

    @model_validator(mode="after")
    def check_kind(self) -> "DetailTypesQuery":
        if not self.kind.has_details:
            raise ValueError(f"{self.kind.value} events have no detail types")
        return self

RequestT = TypeVar("RequestT", bound=_Request)

def parse_request(model: Type[RequestT], payload: Dict[str, Any]) -> RequestT:
    """
    Validate raw inbound values into a request model.

    Args:
        model: Request model class
        payload: Raw values, typically straight from a JSON body or query string

    Returns:
        Validated request

    Raises:
        ValidationError: If any value is missing, malformed or out of domain

    Example:
        >>> req = parse_request(PeriodDateRequest, {"date": "2024-01-01"})
        >>> req.day
        datetime.date(2024, 1, 1)
    """
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        details = [
            {
                "field": ".".join(str(part) for part in err["loc"]) or None,
                "message": err["msg"],
            }
            for err in e.errors()
        ]
        message = "; ".join(
            f"{d['field']}: {d['message']}" if d["field"] else d["message"]
            for d in details
        )
        raise ValidationError(message, details=details) from e
