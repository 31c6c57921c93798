"""
Middleware functions for request processing.
"""
import json
from functools import wraps
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from src.services.exceptions import CycleEngineError, ValidationError
from src.utils.logging import log_exception, logger

class Identity(BaseModel):
    """Caller identity resolved by the API Gateway authorizer."""
    subject_id: str
    team_id: Optional[str] = None

def response(status_code: int, body: Any) -> Dict[str, Any]:
    """
    Build an API Gateway proxy response.

    Pydantic models are dumped in JSON mode so dates become ISO strings.
    """
    if isinstance(body, BaseModel):
        body = body.model_dump(mode="json")
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
        "isBase64Encoded": False
    }

def error_response(error: CycleEngineError) -> Dict[str, Any]:
    """Map a service error onto its status code."""
    body: Dict[str, Any] = {"error": error.message}
    if error.details:
        body["details"] = error.details
    open_period_id = getattr(error, "open_period_id", None)
    if open_period_id:
        body["openPeriodId"] = open_period_id
    return response(error.status_code, body)

def parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Decode the JSON body of a proxy event; an empty body is an empty dict.

    Raises:
        ValidationError: If the body is valid JSON but not an object
    """
    body = event.get("body") or {}
    if isinstance(body, str):
        body = json.loads(body)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body

def query_params(event: Dict[str, Any]) -> Dict[str, str]:
    return event.get("queryStringParameters") or {}

def extract_identity(event: Dict[str, Any]) -> Optional[Identity]:
    """
    Read subject and team from the authorizer context.

    Supports Lambda authorizers (``subject_id``/``team_id`` keys) and JWT
    authorizers (``sub`` and ``custom:team_id`` claims).
    """
    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}
    claims = authorizer.get("claims") or (authorizer.get("jwt") or {}).get("claims") or {}

    subject_id = authorizer.get("subject_id") or claims.get("sub")
    team_id = authorizer.get("team_id") or claims.get("custom:team_id")
    if not subject_id:
        return None
    return Identity(subject_id=str(subject_id), team_id=str(team_id) if team_id else None)

def require_subject(f: Callable) -> Callable:
    """
    Decorator resolving the caller and mapping service errors to responses.

    The wrapped handler receives the resolved ``Identity`` as third argument.
    Service errors become 4xx/5xx responses; anything else is logged and
    returned as a 500.

    Args:
        f: Handler function to wrap

    Returns:
        Wrapped handler function
    """
    @wraps(f)
    def wrapped(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
        identity = extract_identity(event)
        if identity is None:
            logger.warning("Request without subject identity", extra={
                "path": event.get("path"),
                "method": event.get("httpMethod")
            })
            return response(401, {"error": "Unauthorized"})

        logger.append_keys(subject_id=identity.subject_id)
        try:
            return f(event, context, identity)
        except CycleEngineError as e:
            if e.status_code >= 500:
                log_exception(logger, "Service error", extra={
                    "error": e.message,
                    "error_type": e.__class__.__name__
                })
            else:
                logger.info("Request rejected", extra={
                    "error": e.message,
                    "error_type": e.__class__.__name__,
                    "status_code": e.status_code
                })
            return error_response(e)
        except json.JSONDecodeError as e:
            return response(400, {"error": f"Malformed JSON body: {e.msg}"})
        except Exception as e:
            log_exception(logger, "Unhandled error", extra={
                "error": str(e),
                "error_type": e.__class__.__name__
            })
            return response(500, {"error": "Internal server error"})

    return wrapped
