"""
Incident state and audit trail storage.

In-memory (optionally file-backed) by default; DynamoDB when configured.
"""

from opspilot.storage.dynamodb import DynamoDBAuditLog, DynamoDBIncidentStore
from opspilot.storage.store import AuditLog, IncidentStore

__all__ = ["AuditLog", "DynamoDBAuditLog", "DynamoDBIncidentStore", "IncidentStore"]
