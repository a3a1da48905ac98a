"""AWS Lambda resource controller: read, change, invoke and health-check functions via boto3."""

import json
import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from opspilot.errors import TransientIOError

logger = logging.getLogger(__name__)

INVOCATION_TYPES = ("RequestResponse", "Event", "DryRun")
# Below these a function is considered misconfigured by the health check
MIN_HEALTHY_TIMEOUT_SECONDS = 3
MIN_HEALTHY_MEMORY_MB = 256

# delta keys → UpdateFunctionConfiguration arguments
_DELTA_KEYS = {"memory_size": "MemorySize", "timeout": "Timeout"}


def _read_payload(raw: Any) -> Any:
    if raw is None:
        return None
    data = raw.read() if hasattr(raw, "read") else raw
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    if not data:
        return None
    try:
        return json.loads(data)
    except json.JSONDecodeError:
        return data


class LambdaController:
    """
    Lambda implementation of the resource controller.

    delta keys accepted by update_config:
      memory_size          → MemorySize
      timeout              → Timeout
      environment          → Environment.Variables (replaces the whole map)
      reserved_concurrency → PutFunctionConcurrency

    With dry_run=True no mutating call is made; the merged configuration that
    would result is logged and returned instead.
    """

    def __init__(self, client: Any, dry_run: bool = False) -> None:
        self._client = client
        self.dry_run = dry_run

    def get_config(self, resource_id: str) -> dict[str, Any]:
        try:
            config = self._client.get_function_configuration(FunctionName=resource_id)
        except (BotoCoreError, ClientError) as e:
            raise TransientIOError(f"GetFunctionConfiguration failed for {resource_id}: {e}") from e
        config.pop("ResponseMetadata", None)
        return config

    def update_config(self, resource_id: str, delta: dict[str, Any]) -> dict[str, Any]:
        """Apply a configuration delta; returns the resulting configuration."""
        kwargs: dict[str, Any] = {
            aws_key: delta[key] for key, aws_key in _DELTA_KEYS.items() if delta.get(key) is not None
        }
        if delta.get("environment") is not None:
            kwargs["Environment"] = {"Variables": dict(delta["environment"])}
        concurrency = delta.get("reserved_concurrency")

        if self.dry_run:
            merged = {**self.get_config(resource_id), **kwargs}
            if concurrency is not None:
                merged["ReservedConcurrentExecutions"] = concurrency
            logger.info(
                "Dry run: configuration not changed",
                extra={"function_name": resource_id, "changes": kwargs, "reserved_concurrency": concurrency},
            )
            return merged

        result: dict[str, Any] = {}
        try:
            if kwargs:
                result = self._client.update_function_configuration(FunctionName=resource_id, **kwargs)
                result.pop("ResponseMetadata", None)
            if concurrency is not None:
                self._client.put_function_concurrency(
                    FunctionName=resource_id, ReservedConcurrentExecutions=concurrency
                )
                result["ReservedConcurrentExecutions"] = concurrency
        except (BotoCoreError, ClientError) as e:
            raise TransientIOError(f"Configuration update failed for {resource_id}: {e}") from e
        logger.info("Lambda configuration updated", extra={"function_name": resource_id, "changes": kwargs})
        return result

    def invoke(self, resource_id: str, payload: Any, mode: str = "RequestResponse") -> dict[str, Any]:
        if mode not in INVOCATION_TYPES:
            raise ValueError(f"Unsupported invocation type: {mode}")
        try:
            response = self._client.invoke(
                FunctionName=resource_id,
                InvocationType=mode,
                Payload=json.dumps(payload).encode("utf-8"),
            )
        except (BotoCoreError, ClientError) as e:
            raise TransientIOError(f"Invoke failed for {resource_id}: {e}") from e
        return {
            "status_code": response.get("StatusCode", 0),
            "payload": _read_payload(response.get("Payload")),
            "function_error": response.get("FunctionError"),
            "executed_version": response.get("ExecutedVersion"),
        }

    def check_health(self, resource_id: str) -> tuple[bool, list[str]]:
        """
        Configuration sanity plus a DryRun invocation.

        Failures are reported as issues rather than raised.
        """
        issues: list[str] = []
        try:
            config = self.get_config(resource_id)
        except TransientIOError as e:
            return False, [f"Failed to check function health: {e}"]

        timeout = config.get("Timeout")
        if timeout and timeout < MIN_HEALTHY_TIMEOUT_SECONDS:
            issues.append(f"Timeout is very low (< {MIN_HEALTHY_TIMEOUT_SECONDS} seconds)")
        memory = config.get("MemorySize")
        if memory and memory < MIN_HEALTHY_MEMORY_MB:
            issues.append(f"Memory size is very low (< {MIN_HEALTHY_MEMORY_MB} MB)")
        try:
            self.invoke(resource_id, {}, mode="DryRun")
        except TransientIOError as e:
            issues.append(f"Test invocation failed: {e}")
        return not issues, issues
