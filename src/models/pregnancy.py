"""
Result models for pregnancy dating and lifecycle operations.
"""
from datetime import date
from typing import Optional
from pydantic import BaseModel

class PregnancyCalculation(BaseModel):
    """Outcome of a due-date calculation from a reported LMP."""
    ovulation_date: date
    due_date: date
    gestational_week: int
    has_overlap: bool

class SavedPregnancy(BaseModel):
    """Pregnancy dates as stored by a save transition."""
    ovulation_date: date
    childbirthdate: date
    gestational_week: int

class PregnancyStatusView(BaseModel):
    """
    Read-only projection of a subject's pregnancy state.

    ``last_menses_date`` is filled even when no pregnancy is active so the
    calculator form can be pre-filled from history.
    """
    active: bool
    childbirthdate: Optional[date] = None
    ovulation_date: Optional[date] = None
    gestational_week: Optional[int] = None
    duration_period: Optional[int] = None
    last_menses_date: Optional[date] = None
