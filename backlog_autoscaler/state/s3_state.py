import json
import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError


def _state_key(ecs_cluster, service_name):
    return f"autoscaling-state/{ecs_cluster}/{service_name}/controller-state.json"


def load_controller_state(aws_wrapper, s3_config_bucket, ecs_cluster, service_name) -> Optional[Dict[str, Any]]:
    """
    Get the controller state saved by the previous run from S3.

    Args:
        aws_wrapper: AWS wrapper instance
        s3_config_bucket: S3 bucket name for state storage
        ecs_cluster: ECS cluster name
        service_name: ECS service name

    Returns:
        dict: Saved state with 'last_target', 'last_applied_at' and 'alarm',
              or None when there is no usable state
    """
    state_key = _state_key(ecs_cluster, service_name)
    logging.info(f"Retrieving controller state from {s3_config_bucket}/{state_key}")

    try:
        file_content = aws_wrapper.get_file_content_from_s3_bucket(s3_config_bucket, state_key)
    except ClientError as e:
        if e.response.get('Error', {}).get('Code') in ('NoSuchKey', '404'):
            logging.info("No previous controller state found, cooldown starts unarmed")
        else:
            logging.warning(f"Error getting controller state from S3: {e}")
        return None
    except BotoCoreError as e:
        logging.warning(f"Error getting controller state from S3: {e}")
        return None

    try:
        state_data = json.loads(file_content.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logging.warning(f"Error parsing JSON controller state: {e}")
        return None

    last_applied_at = state_data.get('last_applied_at')
    if last_applied_at is not None:
        try:
            last_applied_at = float(last_applied_at)
        except (TypeError, ValueError):
            logging.warning(f"Invalid timestamp format in controller state: {last_applied_at}")
            last_applied_at = None

    if last_applied_at is not None:
        readable_time = datetime.fromtimestamp(last_applied_at).strftime('%Y-%m-%d %H:%M:%S')
        logging.info(f"Retrieved last decision: target {state_data.get('last_target')} applied at {readable_time}")

    return {
        'last_target': state_data.get('last_target'),
        'last_applied_at': last_applied_at,
        'alarm': state_data.get('alarm') or {},
        'pending_target': state_data.get('pending_target'),
        'task_failures': int(state_data.get('task_failures') or 0),
        'instance_failures': int(state_data.get('instance_failures') or 0)
    }


def save_controller_state(aws_wrapper, s3_config_bucket, ecs_cluster, service_name,
                          last_target, last_applied_at, alarm_state,
                          pending_target=None, task_failures=0, instance_failures=0):
    """
    Save the controller state to S3 so a restart keeps the cooldown and alarm window,
    the decision still waiting to be applied and the consecutive failure counts.

    Failures are logged and not raised; losing the state only rearms the cooldown.

    Args:
        aws_wrapper: AWS wrapper instance
        s3_config_bucket: S3 bucket name for state storage
        ecs_cluster: ECS cluster name
        service_name: ECS service name
        last_target: Target of the last applied decision
        last_applied_at: Time the cooldown was last started
        alarm_state: Exported alarm evaluator state
        pending_target: Target of a decision whose apply failed, if any
        task_failures: Consecutive desired count update failures
        instance_failures: Consecutive instance pool update failures
    """
    state_key = _state_key(ecs_cluster, service_name)
    state_data = {
        'saved_at': time.time(),
        'cluster': ecs_cluster,
        'service': service_name,
        'last_target': last_target,
        'last_applied_at': last_applied_at,
        'alarm': alarm_state,
        'pending_target': pending_target,
        'task_failures': task_failures,
        'instance_failures': instance_failures
    }

    try:
        aws_wrapper.upload_bytes_to_s3(
            bucket=s3_config_bucket,
            file_path=state_key,
            content=json.dumps(state_data).encode('utf-8')
        )
        logging.debug(f"Saved controller state to {s3_config_bucket}/{state_key}")
    except (ClientError, BotoCoreError) as e:
        logging.warning(f"Error writing controller state to S3: {e}")
