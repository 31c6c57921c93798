"""
Event model definition for dated subject events (menses, pregnancy, measurements),
the details selected on them, and the transient events calculated from them.
"""
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator

class EventKind(str, Enum):
    """
    Closed set of calendar event kinds.

    Values are the names stored in the event table; ``type_id`` and ``label``
    keep the typology ids and labels shown by the calendar client.
    """
    MENSES = "MENSES"
    TEMPERATURE = "TEMPERATURE"
    WEIGHT = "WEIGHT"
    SYMPTOMS = "SYMPTOMS"
    DRUGS = "DRUGS"
    MOODS = "MOODS"
    OVULATION_CALC = "OVULATION_CALC"
    FERTILITY_CALC = "FERTILITY_CALC"
    MENSES_PROJECTED = "MENSES_PROJECTED"
    PREGNANCY = "PREGNANCY"

    @property
    def type_id(self) -> int:
        return EVENT_TYPES[self][0]

    @property
    def label(self) -> str:
        return EVENT_TYPES[self][1]

    @property
    def is_calculated(self) -> bool:
        """Calculated kinds exist only in responses, never in the store."""
        return self in CALCULATED_KINDS

    @property
    def has_details(self) -> bool:
        """Kinds whose events carry a list of selected detail types."""
        return self in DETAIL_KINDS

    @classmethod
    def from_type_id(cls, type_id: int) -> "EventKind":
        for kind, (kind_type_id, _) in EVENT_TYPES.items():
            if kind_type_id == type_id:
                return kind
        raise ValueError(f"Unknown event type id {type_id}")

EVENT_TYPES = {
    EventKind.MENSES: (20, "Mestruazione"),
    EventKind.TEMPERATURE: (21, "Temperatura basale"),
    EventKind.WEIGHT: (22, "Peso"),
    EventKind.SYMPTOMS: (23, "Sintomi"),
    EventKind.DRUGS: (24, "Farmaci"),
    EventKind.MOODS: (25, "Stati d'animo"),
    EventKind.OVULATION_CALC: (26, "Ovulazione"),
    EventKind.FERTILITY_CALC: (27, "Periodo fertile"),
    EventKind.MENSES_PROJECTED: (28, "Ciclo previsto"),
    EventKind.PREGNANCY: (29, "Gravidanza"),
}

CALCULATED_KINDS = frozenset({
    EventKind.OVULATION_CALC,
    EventKind.FERTILITY_CALC,
    EventKind.MENSES_PROJECTED,
})

DETAIL_KINDS = frozenset({
    EventKind.SYMPTOMS,
    EventKind.DRUGS,
    EventKind.MOODS,
})

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

class EventDetailType(BaseModel):
    """Selectable detail of a symptoms, drugs or moods event (e.g. "Cefalea")."""
    id: int
    kind: EventKind
    label: str
    deleted: bool = False

class EventDetail(BaseModel):
    """
    Detail type selected on a stored event.

    ``value`` is the intensity (0-3) for symptoms and moods and is usually
    empty for drugs. The label is copied from the detail type when saved.
    """
    event_id: str
    detail_type_id: int
    label: Optional[str] = None
    value: Optional[int] = None
    deleted: bool = False
    last_modified: datetime = Field(default_factory=_utcnow)

class CycleEvent(BaseModel):
    """
    Represents a dated subject event.

    Persisted events carry the id assigned by the store; calculated events carry
    a synthetic id and ``calculated=True``.
    """
    id: str
    subject_id: str
    kind: EventKind
    beginning: date
    ending: Optional[date] = None
    value: Optional[float] = None
    deleted: bool = False
    last_modified: datetime = Field(default_factory=_utcnow)
    calculated: bool = False
    details: List[EventDetail] = Field(default_factory=list)  # Filled on calendar reads

    @model_validator(mode="after")
    def check_ending(self) -> "CycleEvent":
        if self.ending is not None and self.ending < self.beginning:
            raise ValueError("ending must not be before beginning")
        return self

    @property
    def is_open(self) -> bool:
        """True for a period with no recorded ending yet."""
        return self.kind == EventKind.MENSES and self.ending is None

    @property
    def last_day(self) -> date:
        """Last day covered by the event; single-day events end where they begin."""
        return self.ending or self.beginning

    def overlaps(self, start: date, end: date) -> bool:
        """Check whether the event intersects the inclusive [start, end] window."""
        return self.beginning <= end and self.last_day >= start
