"""
Subject model definition holding the cycle statistics and pregnancy fields.
"""
from datetime import date, datetime, timezone
from typing import Optional, Union
from pydantic import BaseModel, Field, model_validator

class Inactive(BaseModel):
    """No pregnancy is being tracked."""
    active: bool = False

class Active(BaseModel):
    """A single tracked pregnancy."""
    active: bool = True
    ovulation_date: date
    due_date: date

PregnancyStatus = Union[Inactive, Active]

class SubjectCycleProfile(BaseModel):
    """
    Scalar cycle fields stored on the subject record.

    ``ovulation_date`` and ``childbirthdate`` are stored as two nullable
    columns; callers read them through ``pregnancy_status``.
    """
    subject_id: str
    team_id: Optional[str] = None
    duration_period: Optional[int] = None  # Days between cycle starts
    duration_menstruation: Optional[int] = None  # Days of bleeding
    ovulation_date: Optional[date] = None
    childbirthdate: Optional[date] = None
    last_modified: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def check_pregnancy_pair(self) -> "SubjectCycleProfile":
        if (self.ovulation_date is None) != (self.childbirthdate is None):
            raise ValueError("ovulation_date and childbirthdate must be set together")
        return self

    @property
    def pregnancy_status(self) -> PregnancyStatus:
        if self.ovulation_date is None:
            return Inactive()
        return Active(ovulation_date=self.ovulation_date, due_date=self.childbirthdate)
