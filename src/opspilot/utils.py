"""Small helpers shared by the entry points."""

import re

from pydantic import BaseModel

from opspilot.models import Severity

_ARN_RE = re.compile(r"^arn:aws:([^:]+):([^:]*):([^:]*):(.+)$")


class ArnParts(BaseModel):
    service: str
    region: str
    account_id: str
    resource_type: str
    resource_name: str


def parse_arn(arn: str) -> ArnParts | None:
    """Split an ARN; None when it is not one."""
    match = _ARN_RE.match(arn or "")
    if not match:
        return None
    service, region, account_id, resource = match.groups()
    resource_type, *name_parts = re.split(r"[/:]", resource)
    return ArnParts(
        service=service,
        region=region,
        account_id=account_id,
        resource_type=resource_type,
        resource_name="/".join(name_parts),
    )


def validate_severity(severity: str) -> bool:
    return severity in {s.value for s in Severity}


def extract_error_message(logs: list[str]) -> str | None:
    """First line mentioning an error across the log messages."""
    for log in logs:
        for line in log.splitlines():
            if "ERROR" in line or "Error" in line:
                return line.strip()
    return None
