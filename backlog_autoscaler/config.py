import json
import os
from typing import Dict, Any, Optional, NamedTuple, Tuple

from backlog_autoscaler.exceptions import ConfigurationError

SUPPORTED_QUEUE_TYPES = ('sqs', 'cloudwatch', 'redis')
STEP_DIRECTIONS = ('in', 'out')


class StepAdjustment(NamedTuple):
    """One row of the step table: scale to ``target`` tasks past ``bound``."""
    bound: float
    direction: str
    target: int


class Config(NamedTuple):
    """Configuration for the autoscaler."""
    # ECS configuration
    cluster_name: str
    service_name: str
    min_tasks: int
    max_tasks: int

    # Queue configuration
    queue_type: str
    queue_config: Dict[str, Any]

    # Alarm parameters
    sampling_period: float
    evaluation_periods: int
    alarm_threshold: float

    # Step scaling parameters
    step_table: Tuple[StepAdjustment, ...]
    cooldown: float

    # Instance pool configuration
    asg_name: str
    min_instances: int
    max_instances: int
    min_scaling_step: int
    max_scaling_step: int
    target_utilization: float
    task_cpu_units: int
    instance_cpu_units: int
    reconcile_period: float

    # Failure reporting
    degraded_after_failures: int

    # AWS configuration
    region: str
    sso_profile: Optional[str]
    s3_config_bucket: Optional[str]


def _setting(config_from_event: Dict[str, Any], key: str, env_name: str, default=None):
    # Explicit zeros in the event must win over the environment
    value = config_from_event.get(key)
    if value is not None:
        return value
    return os.environ.get(env_name, default)


def _to_bool(value) -> bool:
    return str(value).lower() in ('true', '1', 't', 'yes')


def _load_queue_config(queue_type: str) -> Dict[str, Any]:
    if queue_type == 'sqs':
        return {
            'queue_url': os.environ.get('SQS_QUEUE_URL'),
            'include_in_flight': _to_bool(os.environ.get('USE_COMBINED_MESSAGES', 'False'))
        }
    if queue_type == 'cloudwatch':
        return {
            'queue_name': os.environ.get('SQS_QUEUE_NAME'),
            'metric_name': os.environ.get('SQS_METRIC_NAME')
        }
    if queue_type == 'redis':
        return {
            'host': os.environ.get('REDIS_HOST'),
            'port': os.environ.get('REDIS_PORT'),
            'password': os.environ.get('REDIS_PASSWORD'),
            'use_ssl': os.environ.get('REDIS_USE_SSL'),
            'queue_key': os.environ.get('REDIS_QUEUE_KEY'),
            'queue_type': os.environ.get('REDIS_QUEUE_TYPE', 'list'),
            'consumer_group': os.environ.get('REDIS_CONSUMER_GROUP')
        }
    return {}


def parse_step_table(raw, max_tasks: int) -> Tuple[StepAdjustment, ...]:
    """
    Parse the step table from a JSON string or a list of dicts.

    When no table is given the reference table is used: scale in to 0 tasks
    at a backlog of at most 1, scale out to ``max_tasks`` at a backlog of at least 1.

    Raises:
        ConfigurationError: If the table cannot be parsed
    """
    if raw is None or raw == '':
        return (
            StepAdjustment(bound=1.0, direction='in', target=0),
            StepAdjustment(bound=1.0, direction='out', target=max_tasks),
        )

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"STEP_TABLE is not valid JSON: {e}") from e

    if not isinstance(raw, (list, tuple)):
        raise ConfigurationError("Step table must be a list of {bound, direction, target} entries")

    steps = []
    for entry in raw:
        if isinstance(entry, StepAdjustment):
            steps.append(entry)
            continue
        try:
            steps.append(StepAdjustment(
                bound=float(entry['bound']),
                direction=str(entry['direction']).lower(),
                target=entry['target']
            ))
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Malformed step table entry {entry!r}: {e}") from e
    return tuple(steps)


def load_config(event: Dict[str, Any] = None) -> Config:
    """
    Load configuration from environment variables and optional event payload.

    Event payload values override environment variables when present.

    Args:
        event: Optional Lambda event that may contain configuration overrides

    Returns:
        Config: Configuration object with all autoscaler settings

    Raises:
        ConfigurationError: If a numeric setting cannot be parsed
    """
    event = event or {}
    config_from_event = event.get('config', {})

    try:
        max_tasks = int(_setting(config_from_event, 'max_tasks', 'MAX_TASKS', '3'))

        queue_type = str(_setting(config_from_event, 'queue_type', 'QUEUE_TYPE', 'sqs')).lower()
        sampling_period = float(_setting(config_from_event, 'sampling_period', 'SAMPLING_PERIOD', '30'))

        queue_config = config_from_event.get('queue_config') or _load_queue_config(queue_type)
        queue_config = {k: v for k, v in queue_config.items() if v is not None}
        if queue_type == 'cloudwatch':
            queue_config.setdefault('period', int(sampling_period))

        return Config(
            cluster_name=_setting(config_from_event, 'cluster_name', 'ECS_CLUSTER'),
            service_name=_setting(config_from_event, 'service_name', 'SERVICE_NAME'),
            min_tasks=int(_setting(config_from_event, 'min_tasks', 'MIN_TASKS', '0')),
            max_tasks=max_tasks,
            queue_type=queue_type,
            queue_config=queue_config,
            sampling_period=sampling_period,
            evaluation_periods=int(_setting(config_from_event, 'evaluation_periods', 'EVALUATION_PERIODS', '1')),
            alarm_threshold=float(_setting(config_from_event, 'alarm_threshold', 'ALARM_THRESHOLD', '0')),
            step_table=parse_step_table(_setting(config_from_event, 'step_table', 'STEP_TABLE'), max_tasks),
            cooldown=float(_setting(config_from_event, 'cooldown', 'COOLDOWN', '30')),
            asg_name=_setting(config_from_event, 'asg_name', 'ASG_NAME'),
            min_instances=int(_setting(config_from_event, 'min_instances', 'MIN_INSTANCES', '0')),
            max_instances=int(_setting(config_from_event, 'max_instances', 'MAX_INSTANCES', '3')),
            min_scaling_step=int(_setting(config_from_event, 'min_scaling_step', 'MIN_SCALING_STEP', '1')),
            max_scaling_step=int(_setting(config_from_event, 'max_scaling_step', 'MAX_SCALING_STEP', '3')),
            target_utilization=float(_setting(config_from_event, 'target_utilization', 'TARGET_UTILIZATION', '100')),
            task_cpu_units=int(_setting(config_from_event, 'task_cpu_units', 'TASK_CPU_UNITS', '1024')),
            instance_cpu_units=int(_setting(config_from_event, 'instance_cpu_units', 'INSTANCE_CPU_UNITS', '2048')),
            reconcile_period=float(_setting(config_from_event, 'reconcile_period', 'RECONCILE_PERIOD', '60')),
            degraded_after_failures=int(_setting(config_from_event, 'degraded_after_failures',
                                                 'DEGRADED_AFTER_FAILURES', '3')),
            region=_setting(config_from_event, 'region', 'AWS_REGION', 'us-east-1'),
            sso_profile=_setting(config_from_event, 'sso_profile', 'SSO_PROFILE'),
            s3_config_bucket=_setting(config_from_event, 's3_config_bucket', 'S3_CONFIG_BUCKET') or None
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid numeric setting: {e}") from e


def _check_bounds(name: str, minimum, maximum, floor=0):
    if minimum < floor:
        raise ConfigurationError(f"{name} minimum must be >= {floor}, got {minimum}")
    if minimum > maximum:
        raise ConfigurationError(f"{name} minimum ({minimum}) must not exceed maximum ({maximum})")


def validate_config(config: Config) -> None:
    """
    Check that the configuration can drive both capacity loops.

    The controller refuses to start on any error rather than making
    undefined decisions.

    Raises:
        ConfigurationError: Describing the first problem found
    """
    # Imported here to avoid a cycle: the step table lives with the policy
    from backlog_autoscaler.scaler import StepTable

    missing = [name for name in ('cluster_name', 'service_name', 'asg_name') if not getattr(config, name)]
    if missing:
        raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

    if config.queue_type not in SUPPORTED_QUEUE_TYPES:
        supported = ', '.join(SUPPORTED_QUEUE_TYPES)
        raise ConfigurationError(f"Unsupported queue type: {config.queue_type}. Supported types: {supported}")
    if not config.queue_config:
        raise ConfigurationError("Queue configuration is missing")

    _check_bounds('Task count', config.min_tasks, config.max_tasks)
    _check_bounds('Instance pool size', config.min_instances, config.max_instances)
    _check_bounds('Instance scaling step', config.min_scaling_step, config.max_scaling_step, floor=1)

    if not 0 < config.target_utilization <= 100:
        raise ConfigurationError(f"Target utilization must be in (0, 100], got {config.target_utilization}")
    if config.evaluation_periods < 1:
        raise ConfigurationError(f"Evaluation periods must be >= 1, got {config.evaluation_periods}")
    if config.sampling_period <= 0 or config.reconcile_period <= 0:
        raise ConfigurationError("Sampling and reconcile periods must be positive")
    if config.cooldown < 0:
        raise ConfigurationError(f"Cooldown must be >= 0, got {config.cooldown}")
    if config.task_cpu_units <= 0 or config.instance_cpu_units <= 0:
        raise ConfigurationError("Task and instance CPU units must be positive")
    if config.degraded_after_failures < 1:
        raise ConfigurationError(f"Degraded threshold must be >= 1, got {config.degraded_after_failures}")

    StepTable(config.step_table)
