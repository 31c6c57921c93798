"""
Lambda handlers for pregnancy dating.

Routes (API Gateway proxy integration):
    GET  /pregnancy/status
    POST /pregnancy/calculate   {lastMensesDate, durationPeriod}
    POST /pregnancy/save        {childbirthdate, ovulationDate}
    POST /pregnancy/terminate   {pregnancyEndedDate}
"""
from typing import Dict

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.utilities.typing import LambdaContext

from src.utils.clients import get_lifecycle, get_pregnancy
from src.utils.middleware import Identity, parse_body, require_subject, response

logger = Logger()
tracer = Tracer()

@logger.inject_lambda_context
@tracer.capture_lambda_handler
@require_subject
def get_status(event: Dict, context: LambdaContext, identity: Identity) -> Dict:
    """Handle pregnancy status requests."""
    status = get_lifecycle().get_status(identity.subject_id, identity.team_id)
    return response(200, {
        "active": status.active,
        "childbirthdate": status.childbirthdate.isoformat() if status.childbirthdate else None,
        "ovulationDate": status.ovulation_date.isoformat() if status.ovulation_date else None,
        "weekNumber": status.gestational_week,
        "durationPeriod": status.duration_period,
        "lastMensesDate": status.last_menses_date.isoformat() if status.last_menses_date else None
    })

@logger.inject_lambda_context
@tracer.capture_lambda_handler
@require_subject
def calculate(event: Dict, context: LambdaContext, identity: Identity) -> Dict:
    """Handle due-date calculations."""
    body = parse_body(event)
    result = get_pregnancy().calculate(
        identity.subject_id,
        identity.team_id,
        body.get("lastMensesDate"),
        body.get("durationPeriod")
    )
    return response(200, {
        "ovulationDate": result.ovulation_date.isoformat(),
        "childbirthdate": result.due_date.isoformat(),
        "weekNumber": result.gestational_week,
        "hasOverlap": result.has_overlap
    })

@logger.inject_lambda_context
@tracer.capture_lambda_handler
@require_subject
def save(event: Dict, context: LambdaContext, identity: Identity) -> Dict:
    """Handle saving or recalculating the active pregnancy."""
    body = parse_body(event)
    saved = get_lifecycle().save(
        identity.subject_id,
        identity.team_id,
        body.get("childbirthdate"),
        body.get("ovulationDate")
    )
    return response(200, {
        "success": True,
        "childbirthdate": saved.childbirthdate.isoformat(),
        "ovulationDate": saved.ovulation_date.isoformat(),
        "weekNumber": saved.gestational_week
    })

@logger.inject_lambda_context
@tracer.capture_lambda_handler
@require_subject
def terminate(event: Dict, context: LambdaContext, identity: Identity) -> Dict:
    """Handle pregnancy termination."""
    body = parse_body(event)
    get_lifecycle().terminate(identity.subject_id, identity.team_id, body.get("pregnancyEndedDate"))
    return response(200, {"success": True})
