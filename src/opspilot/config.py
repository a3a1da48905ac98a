"""Application configuration loaded from environment."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """OpsPilot settings from env vars."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # AWS
    aws_region: str = "us-east-1"
    # Optional: explicit credentials; otherwise use default chain
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None

    # Bedrock model used for diagnosis, planning and the tool loop
    bedrock_model_id: str = "anthropic.claude-3-sonnet-20240229-v1:0"
    bedrock_read_timeout_seconds: int = 300
    # Set true to call Bedrock; false uses the stub (demo/CI without AWS)
    reasoning_use_bedrock: bool = False
    # In-process Lambda and CloudWatch stand-ins instead of boto3 (demo/CI without AWS)
    simulate_aws: bool = False

    # Storage: DynamoDB when enabled, otherwise in-memory (+ optional JSON files)
    use_dynamodb: bool = False
    dynamodb_table_name: str = "OpsPilotAuditTrail"
    storage_data_dir: str = ""

    # Target function for the CLI sample incident and health check
    target_lambda_function: str = "orders-handler"
    # When true, configuration updates are logged but not applied
    dry_run: bool = False

    # Investigate
    anomaly_z_threshold: float = 2.0
    investigation_window_seconds: int = 3600
    metric_period_seconds: int = 300
    log_query_limit: int = 100
    log_sample_limit: int = 10

    # Diagnose
    diagnosis_temperature: float = 0.3
    diagnosis_max_tokens: int = 2048
    # Let the model pull metrics/logs/config through the tool loop while diagnosing
    diagnosis_use_tools: bool = False
    tool_loop_max_iterations: int = 10
    tool_loop_temperature: float = 0.5
    tool_loop_max_tokens: int = 4096

    # Plan
    planning_temperature: float = 0.2
    planning_max_tokens: int = 2048
    # Ask for a JSON action plan; keyword classifier is used when none comes back
    planner_structured_output: bool = False
    default_memory_mb: int = 512
    default_timeout_seconds: int = 30

    # Safety gate (Lambda hard ceilings)
    max_actions: int = 5
    max_memory_mb: int = 10240
    max_timeout_seconds: int = 900

    # Execute
    # False keeps the legacy behaviour: unknown action types report success
    strict_action_types: bool = False
    execution_lease_timeout_seconds: float = 60.0

    # Verify
    verification_window_seconds: int = 300

    log_level: str = "INFO"


def get_settings() -> Settings:
    """Return loaded settings from environment (and .env if present)."""
    return Settings()
