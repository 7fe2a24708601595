import logging

from botocore.exceptions import BotoCoreError, ClientError

from backlog_autoscaler.exceptions import ApplyFailure, TransientReadFailure


def _describe_service(aws_wrapper, cluster: str, service_name: str) -> dict:
    try:
        ecs_client = aws_wrapper.create_aws_client('ecs')
        response = ecs_client.describe_services(cluster=cluster, services=[service_name])
    except (ClientError, BotoCoreError) as e:
        raise TransientReadFailure(f"Error describing service {service_name}: {e}") from e

    if not response.get('services'):
        raise TransientReadFailure(f"Service {service_name} not found in cluster {cluster}")
    return response['services'][0]


def set_desired_task_count(aws_wrapper, cluster: str, service_name: str, count: int) -> None:
    """
    Update the ECS service with a new desired count.

    The count is expected to be clamped by the caller. Setting the current
    value again is accepted by ECS and is not an error.

    Args:
        aws_wrapper: AWS API wrapper instance
        cluster: ECS cluster name
        service_name: ECS service name
        count: New desired task count

    Raises:
        ApplyFailure: If the service update is rejected or times out
    """
    try:
        ecs_client = aws_wrapper.create_aws_client('ecs')
        ecs_client.update_service(
            cluster=cluster,
            service=service_name,
            desiredCount=count
        )
    except (ClientError, BotoCoreError) as e:
        raise ApplyFailure(f"Error updating service {service_name} to {count} tasks: {e}") from e

    logging.info(f"Updated service {service_name} to {count} tasks")


def get_desired_task_count(aws_wrapper, cluster: str, service_name: str) -> int:
    """
    Get the desired count currently set on the ECS service.

    Raises:
        TransientReadFailure: If the service cannot be described
    """
    service = _describe_service(aws_wrapper, cluster, service_name)
    return int(service.get('desiredCount', 0))


def get_scheduled_task_demand(aws_wrapper, cluster: str, service_name: str, task_cpu_units: int) -> float:
    """
    Get the resource demand of the tasks ECS wants to run for the service.

    Pending tasks are part of the demand: they are waiting for instance
    capacity, which is exactly what the instance pool must provide.

    Args:
        aws_wrapper: AWS API wrapper instance
        cluster: ECS cluster name
        service_name: ECS service name
        task_cpu_units: CPU units reserved by one task

    Returns:
        float: Scheduled demand in CPU units

    Raises:
        TransientReadFailure: If the service cannot be described
    """
    service = _describe_service(aws_wrapper, cluster, service_name)
    scheduled = max(int(service.get('desiredCount', 0)),
                    int(service.get('runningCount', 0)) + int(service.get('pendingCount', 0)))

    logging.debug(f"Service {service_name} has {scheduled} scheduled tasks "
                  f"(desired: {service.get('desiredCount', 0)}, running: {service.get('runningCount', 0)}, "
                  f"pending: {service.get('pendingCount', 0)})")
    return float(scheduled * task_cpu_units)
