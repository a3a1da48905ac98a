"""
AWS Lambda entry point.

Event shapes:
  {"incidentId": "..."}                          status query: incident + audit trail
  {"severity", "resourceArn", "description", ...} new incident, run through the workflow
"""

import json
import logging
from functools import lru_cache
from typing import Any

from pydantic import ValidationError

from opspilot.errors import IncidentStateError
from opspilot.models import Incident, IncidentOutcome, ResourceType
from opspilot.utils import parse_arn, validate_severity
from opspilot.workflow import IncidentResponder, build_responder

logger = logging.getLogger(__name__)


def _response(status_code: int, body: dict[str, Any]) -> dict[str, Any]:
    return {"statusCode": status_code, "body": json.dumps(body, default=str)}


def incident_from_event(event: dict[str, Any]) -> Incident:
    """Build an Incident from the camelCase event; raises ValueError on bad input."""
    severity = event.get("severity", "")
    if not validate_severity(severity):
        raise ValueError(f"Invalid severity: {severity!r}")
    resource_arn = event.get("resourceArn", "")
    resource_type = event.get("resourceType")
    if not resource_type:
        parts = parse_arn(resource_arn)
        resource_type = parts.service if parts and parts.service in {t.value for t in ResourceType} else "lambda"
    fields: dict[str, Any] = {
        "severity": severity,
        "resource_arn": resource_arn,
        "resource_type": resource_type,
        "description": event.get("description", ""),
        "metrics": event.get("metrics") or {},
        "logs": event.get("logs") or [],
    }
    if event.get("incidentId"):
        fields["id"] = event["incidentId"]
    try:
        return Incident(**fields)
    except ValidationError as e:
        raise ValueError(str(e)) from e


def handle_event(event: dict[str, Any], responder: IncidentResponder) -> dict[str, Any]:
    if event.get("incidentId") and not event.get("resourceArn"):
        incident_id = event["incidentId"]
        incident = responder.incidents.get(incident_id)
        trail = responder.audit.get_trail(incident_id)
        return _response(
            200,
            {
                "incident": incident.model_dump(mode="json") if incident else None,
                "auditTrail": [entry.model_dump(mode="json") for entry in trail],
                "message": "Incident status retrieved",
            },
        )

    incident = incident_from_event(event)
    result = responder.handle_incident(incident)
    return _response(
        200,
        {
            "incidentId": incident.id,
            "status": incident.status.value,
            "outcome": result.outcome.value,
            "diagnosis": result.diagnosis.root_cause if result.diagnosis else None,
            "actionsExecuted": len(result.execution_results),
            "approvalRequired": result.outcome == IncidentOutcome.AWAITING_APPROVAL,
            "verification": result.verification.model_dump(mode="json") if result.verification else None,
            "error": result.error,
            "message": "Incident processed successfully",
        },
    )


@lru_cache(maxsize=1)
def _default_responder() -> IncidentResponder:
    # Built once per container and reused across warm invocations
    return build_responder()


def handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    logger.info("OpsPilot Lambda invoked", extra={"event_keys": sorted(event or {})})
    try:
        return handle_event(event or {}, _default_responder())
    except IncidentStateError as e:
        logger.warning("Incident rejected: %s", e)
        return _response(409, {"error": str(e), "message": "Incident already closed"})
    except Exception as e:
        logger.error("Error processing incident: %s", e, exc_info=True)
        return _response(500, {"error": str(e), "message": "Failed to process incident"})
