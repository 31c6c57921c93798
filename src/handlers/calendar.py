"""
Lambda handlers for the menstrual calendar.

Routes (API Gateway proxy integration):
    GET    /calendar/events?start=YYYY-MM-DD&end=YYYY-MM-DD
    POST   /calendar/events
    PUT    /calendar/events/{id}
    DELETE /calendar/events/{id}
    GET    /calendar/last-menses
    GET    /calendar/detail-types?eventType=23|24|25
    POST   /calendar/start-period
    POST   /calendar/end-period
"""
from typing import Any, Dict

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.utilities.typing import LambdaContext

from src.models.event import CycleEvent
from src.utils.clients import get_calendar
from src.utils.middleware import Identity, parse_body, query_params, require_subject, response

logger = Logger()
tracer = Tracer()

def format_event(event: CycleEvent) -> Dict[str, Any]:
    """Event as returned to the calendar client."""
    return {
        "id": event.id,
        "beginning": event.beginning.isoformat(),
        "ending": event.ending.isoformat() if event.ending else None,
        "value": event.value,
        "kind": event.kind.value,
        "typeId": event.kind.type_id,
        "calculated": event.calculated,
        "type": {
            "id": event.kind.type_id,
            "label": event.kind.label,
            "pertinence": "calendar_event"
        },
        "details": [
            {
                "detailTypeId": d.detail_type_id,
                "value": d.value,
                "detailType": {"id": d.detail_type_id, "label": d.label}
            }
            for d in event.details
        ]
    }

def _event_id(event: Dict[str, Any]) -> str:
    return (event.get("pathParameters") or {}).get("id", "")

@logger.inject_lambda_context
@tracer.capture_lambda_handler
@require_subject
def get_events(event: Dict, context: LambdaContext, identity: Identity) -> Dict:
    """Handle calendar window requests."""
    params = query_params(event)
    if not params.get("start") or not params.get("end"):
        return response(400, {"error": "Parameters start and end are required"})

    view = get_calendar().get_events_in_range(
        identity.subject_id, identity.team_id, params["start"], params["end"]
    )
    profile = view.profile
    return response(200, {
        "events": [format_event(e) for e in view.events],
        "userProfile": {
            "durationPeriod": profile.duration_period,
            "durationMenstruation": profile.duration_menstruation
        }
    })

@logger.inject_lambda_context
@tracer.capture_lambda_handler
@require_subject
def create_event(event: Dict, context: LambdaContext, identity: Identity) -> Dict:
    """Handle creation of a user-entered event."""
    created = get_calendar().create_event(identity.subject_id, identity.team_id, parse_body(event))
    return response(201, {"message": "Event created", "event": format_event(created)})

@logger.inject_lambda_context
@tracer.capture_lambda_handler
@require_subject
def update_event(event: Dict, context: LambdaContext, identity: Identity) -> Dict:
    """Handle event updates."""
    updated = get_calendar().update_event(
        identity.subject_id, identity.team_id, _event_id(event), parse_body(event)
    )
    return response(200, {"message": "Event updated", "event": format_event(updated)})

@logger.inject_lambda_context
@tracer.capture_lambda_handler
@require_subject
def delete_event(event: Dict, context: LambdaContext, identity: Identity) -> Dict:
    """Handle event deletion."""
    get_calendar().delete_event(identity.subject_id, identity.team_id, _event_id(event))
    return response(200, {"message": "Event deleted"})

@logger.inject_lambda_context
@tracer.capture_lambda_handler
@require_subject
def get_last_menses(event: Dict, context: LambdaContext, identity: Identity) -> Dict:
    """Handle last period lookups."""
    last = get_calendar().get_last_menses(identity.subject_id, identity.team_id)
    return response(200, {
        "lastMensesDate": last.last_menses_date.isoformat() if last.last_menses_date else None,
        "hasOpenPeriod": last.has_open_period,
        "openPeriodId": last.open_period_id
    })

@logger.inject_lambda_context
@tracer.capture_lambda_handler
@require_subject
def start_period(event: Dict, context: LambdaContext, identity: Identity) -> Dict:
    """Handle period start."""
    started = get_calendar().start_period(
        identity.subject_id, identity.team_id, parse_body(event).get("date")
    )
    return response(201, {"message": "Period started", "event": format_event(started)})

@logger.inject_lambda_context
@tracer.capture_lambda_handler
@require_subject
def end_period(event: Dict, context: LambdaContext, identity: Identity) -> Dict:
    """Handle period end."""
    ended = get_calendar().end_period(
        identity.subject_id, identity.team_id, parse_body(event).get("date")
    )
    return response(200, {"message": "Period closed", "event": format_event(ended)})

@logger.inject_lambda_context
@tracer.capture_lambda_handler
@require_subject
def get_detail_types(event: Dict, context: LambdaContext, identity: Identity) -> Dict:
    """Handle detail type lookups for symptoms, drugs and moods."""
    params = query_params(event)
    kind = params.get("eventType") or params.get("kind")
    if not kind:
        return response(400, {"error": "Parameter eventType is required (23=symptoms, 24=drugs, 25=moods)"})

    detail_types = get_calendar().get_detail_types(kind)
    return response(200, {
        "detailTypes": [
            {"id": t.id, "label": t.label, "eventTypeId": t.kind.type_id}
            for t in detail_types
        ]
    })
