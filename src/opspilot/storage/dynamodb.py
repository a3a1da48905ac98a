"""
DynamoDB-backed incident store and audit log.

Tables:
  <table>            audit trail, hash key id / range key timestamp,
                     GSI IncidentIdIndex (incident_id, timestamp)
  <table>-Incidents  incidents, hash key id
"""

import json
import logging
from decimal import Decimal
from typing import Any

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from opspilot.errors import IncidentStateError, TransientIOError
from opspilot.models import AuditEntry, Incident, IncidentStatus, utc_now

logger = logging.getLogger(__name__)

INCIDENT_ID_INDEX = "IncidentIdIndex"
OPEN_STATUSES = (
    IncidentStatus.OPEN.value,
    IncidentStatus.INVESTIGATING.value,
    IncidentStatus.REMEDIATING.value,
)


def to_item(payload: dict[str, Any]) -> dict[str, Any]:
    """DynamoDB rejects floats; round-trip through JSON to turn them into Decimal."""
    return json.loads(json.dumps(payload, default=str), parse_float=Decimal)


def from_item(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_item(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_item(v) for v in value]
    return value


class DynamoDBIncidentStore:
    def __init__(self, dynamodb: Any, table_name: str) -> None:
        self._table = dynamodb.Table(f"{table_name}-Incidents")

    def save(self, incident: Incident) -> None:
        """Insert or replace an incident. Resolved and failed records are never replaced."""
        try:
            self._table.put_item(
                Item=to_item(incident.model_dump(mode="json")),
                ConditionExpression=Attr("id").not_exists() | Attr("status").is_in(list(OPEN_STATUSES)),
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise IncidentStateError(f"Incident {incident.id} is already closed") from e
            raise TransientIOError(f"Saving incident {incident.id} failed: {e}") from e
        except BotoCoreError as e:
            raise TransientIOError(f"Saving incident {incident.id} failed: {e}") from e

    def update_status(
        self,
        incident_id: str,
        status: IncidentStatus,
        details: dict[str, Any] | None = None,
    ) -> None:
        expression = "SET #status = :status, updated_at = :updated_at"
        values: dict[str, Any] = {
            ":status": IncidentStatus(status).value,
            ":updated_at": utc_now().isoformat(),
        }
        if details:
            expression += ", status_details = :details"
            values[":details"] = to_item(details)
        try:
            self._table.update_item(
                Key={"id": incident_id},
                UpdateExpression=expression,
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues=values,
            )
        except (BotoCoreError, ClientError) as e:
            raise TransientIOError(f"Updating incident {incident_id} failed: {e}") from e

    def get(self, incident_id: str) -> Incident | None:
        try:
            response = self._table.get_item(Key={"id": incident_id})
        except (BotoCoreError, ClientError) as e:
            raise TransientIOError(f"Reading incident {incident_id} failed: {e}") from e
        item = response.get("Item")
        if not item:
            return None
        return Incident.model_validate(from_item(item))

    def list_open(self) -> list[Incident]:
        items: list[dict] = []
        kwargs: dict[str, Any] = {"FilterExpression": Attr("status").is_in(list(OPEN_STATUSES))}
        try:
            while True:
                response = self._table.scan(**kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except (BotoCoreError, ClientError) as e:
            raise TransientIOError(f"Listing open incidents failed: {e}") from e
        return [Incident.model_validate(from_item(item)) for item in items]


class DynamoDBAuditLog:
    def __init__(self, dynamodb: Any, table_name: str) -> None:
        self._table = dynamodb.Table(table_name)

    def append(self, entry: AuditEntry) -> None:
        try:
            self._table.put_item(Item=to_item(entry.model_dump(mode="json")))
        except (BotoCoreError, ClientError) as e:
            raise TransientIOError(f"Writing audit entry for {entry.incident_id} failed: {e}") from e

    def get_trail(self, incident_id: str) -> list[AuditEntry]:
        try:
            response = self._table.query(
                IndexName=INCIDENT_ID_INDEX,
                KeyConditionExpression=Key("incident_id").eq(incident_id),
                ScanIndexForward=True,
            )
        except (BotoCoreError, ClientError) as e:
            raise TransientIOError(f"Reading audit trail for {incident_id} failed: {e}") from e
        return [AuditEntry.model_validate(from_item(item)) for item in response.get("Items", [])]
