"""CLI entry point for OpsPilot."""

import argparse
import json
import logging
import sys

from opspilot import __version__
from opspilot.config import get_settings
from opspilot.health import check_health
from opspilot.models import IncidentOutcome, IncidentResponse
from opspilot.simulator import sample_incident
from opspilot.workflow import build_responder, build_stores

logger = logging.getLogger(__name__)


def _print_result(result: IncidentResponse) -> None:
    incident = result.incident
    print(f"Incident: {incident.id} [{incident.severity.value}] {incident.resource_arn}")
    if result.diagnosis:
        print(f"Root cause: {result.diagnosis.root_cause}")
        print(f"Confidence: {result.diagnosis.confidence:.0%}")
    if result.plan:
        print(f"Actions planned: {len(result.plan.actions)}")
        for i, action in enumerate(result.plan.ordered_actions(), start=1):
            print(f"  {i}. {action.type.value}: {action.description}")
        for check in result.plan.safety_checks:
            print(f"  [{'ok' if check.passed else 'BLOCKED'}] {check.type.value}: {check.details}")
    print(f"Actions executed: {len(result.execution_results)}")
    if result.verification:
        for check in result.verification.checks:
            print(f"  [{'ok' if check.passed else 'FAIL'}] {check.name}: {check.details}")
    if result.error:
        print(f"Error: {result.error}")
    print(f"Outcome: {result.outcome.value} (status {incident.status.value})")


def _test_incident(args: argparse.Namespace) -> int:
    responder = build_responder(get_settings())
    result = responder.handle_incident(sample_incident(args.arn))
    _print_result(result)
    return 0 if result.outcome != IncidentOutcome.FAILED else 1


def _list_incidents(args: argparse.Namespace) -> int:
    incidents, _ = build_stores(get_settings())
    open_incidents = incidents.list_open()
    if not open_incidents:
        print("No open incidents found.")
        return 0
    print(f"Found {len(open_incidents)} open incident(s):")
    for i, incident in enumerate(open_incidents, start=1):
        print(f"{i}. [{incident.severity.value.upper()}] {incident.description}")
        print(f"   ID: {incident.id}  Status: {incident.status.value}  Resource: {incident.resource_arn}")
    return 0


def _status(args: argparse.Namespace) -> int:
    incidents, audit = build_stores(get_settings())
    incident = incidents.get(args.incident_id)
    if incident is None:
        print(f"Incident {args.incident_id} not found.")
        return 1
    print(f"{incident.id}: {incident.status.value} ({incident.severity.value}) {incident.resource_arn}")
    for entry in audit.get_trail(incident.id):
        print(f"  {entry.timestamp.isoformat()} {entry.action} [{entry.result.value}]")
    return 0


def _health(args: argparse.Namespace) -> int:
    report = check_health(get_settings())
    print(json.dumps(report.model_dump(), indent=2))
    return 0 if report.status == "healthy" else 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="OpsPilot: autonomous incident response for AWS Lambda")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    test = sub.add_parser("test-incident", help="Run the workflow on a sample incident")
    test.add_argument("arn", nargs="?", default=None, help="Lambda function ARN (default: demo function)")
    test.set_defaults(func=_test_incident)

    sub.add_parser("list-incidents", help="List open incidents").set_defaults(func=_list_incidents)

    status = sub.add_parser("status", help="Show an incident and its audit trail")
    status.add_argument("incident_id")
    status.set_defaults(func=_status)

    sub.add_parser("health", help="Check connectivity to AWS services").set_defaults(func=_health)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
