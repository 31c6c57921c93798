"""
Centralized client initialization module.

This module provides lazy-loaded shared services for the Lambda handlers.
"""
from src.utils.dynamo import get_dynamo
from src.utils.clock import SystemClock
from src.services.event_store import EventStore, SubjectRepository
from src.services.pregnancy import PregnancyService
from src.services.pregnancy_lifecycle import PregnancyLifecycleManager
from src.services.calendar import CalendarService

# Initialize shared services (lazy loading)
_event_store = None
_subjects = None
_lifecycle = None
_pregnancy = None
_calendar = None

def get_event_store() -> EventStore:
    """Get or create the event store."""
    global _event_store
    if _event_store is None:
        _event_store = EventStore(get_dynamo())
    return _event_store

def get_subjects() -> SubjectRepository:
    """Get or create the subject repository."""
    global _subjects
    if _subjects is None:
        _subjects = SubjectRepository(get_dynamo())
    return _subjects

def get_lifecycle() -> PregnancyLifecycleManager:
    """Get or create the pregnancy lifecycle manager."""
    global _lifecycle
    if _lifecycle is None:
        _lifecycle = PregnancyLifecycleManager(get_event_store(), get_subjects(), SystemClock())
    return _lifecycle

def get_pregnancy() -> PregnancyService:
    """Get or create the pregnancy calculation service."""
    global _pregnancy
    if _pregnancy is None:
        _pregnancy = PregnancyService(get_event_store(), get_subjects(), SystemClock())
    return _pregnancy

def get_calendar() -> CalendarService:
    """Get or create the calendar service."""
    global _calendar
    if _calendar is None:
        _calendar = CalendarService(get_event_store(), get_subjects(), get_lifecycle())
    return _calendar
