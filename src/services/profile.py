"""
Subject profile checks shared by the calendar and pregnancy services.
"""
from typing import Optional

from src.models.subject import SubjectCycleProfile
from src.services.event_store import SubjectRepository
from src.services.exceptions import ProfileIncompleteError, TeamAssociationError

def load_profile(
    subjects: SubjectRepository,
    subject_id: str,
    team_id: Optional[str]
) -> SubjectCycleProfile:
    """
    Load a subject profile and check its team association.

    Args:
        subjects: Subject repository
        subject_id: Subject to load
        team_id: Team the caller acts for; None accepts the subject's own team

    Returns:
        The subject's cycle profile

    Raises:
        NotFoundError: If the subject does not exist
        TeamAssociationError: If the subject has no team or belongs to another
    """
    profile = subjects.get_cycle_profile(subject_id)
    if profile.team_id is None:
        raise TeamAssociationError("Subject is not associated with any team")
    if team_id is not None and str(team_id) != profile.team_id:
        raise TeamAssociationError(f"Subject is not associated with team {team_id}")
    return profile

def validate_prerequisites(profile: SubjectCycleProfile) -> None:
    """
    Check the profile holds the statistics needed by the calendar.

    Raises:
        ProfileIncompleteError: If cycle or menstruation duration is missing
    """
    if not profile.duration_period or profile.duration_period <= 0:
        raise ProfileIncompleteError(
            "Cycle duration must be set in the profile to use the menstrual calendar"
        )
    if not profile.duration_menstruation or profile.duration_menstruation <= 0:
        raise ProfileIncompleteError(
            "Menstruation duration must be set in the profile to use the menstrual calendar"
        )
