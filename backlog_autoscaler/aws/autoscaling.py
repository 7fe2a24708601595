import logging

from botocore.exceptions import BotoCoreError, ClientError

from backlog_autoscaler.exceptions import ApplyFailure, TransientReadFailure


def set_instance_pool_size(aws_wrapper, asg_name: str, count: int) -> None:
    """
    Set the desired capacity of the Auto Scaling group backing the cluster.

    The count is expected to be clamped and stepped by the caller. The group's
    own cooldown is not honored; the instance loop paces itself.

    Raises:
        ApplyFailure: If the capacity change is rejected or times out
    """
    try:
        autoscaling_client = aws_wrapper.create_aws_client('autoscaling')
        autoscaling_client.set_desired_capacity(
            AutoScalingGroupName=asg_name,
            DesiredCapacity=count,
            HonorCooldown=False
        )
    except (ClientError, BotoCoreError) as e:
        raise ApplyFailure(f"Error setting desired capacity of {asg_name} to {count}: {e}") from e

    logging.info(f"Updated instance pool {asg_name} to {count} instances")


def get_instance_pool_size(aws_wrapper, asg_name: str) -> int:
    """
    Get the desired capacity currently set on the Auto Scaling group.

    Raises:
        TransientReadFailure: If the group cannot be described or does not exist
    """
    try:
        autoscaling_client = aws_wrapper.create_aws_client('autoscaling')
        response = autoscaling_client.describe_auto_scaling_groups(AutoScalingGroupNames=[asg_name])
    except (ClientError, BotoCoreError) as e:
        raise TransientReadFailure(f"Error describing Auto Scaling group {asg_name}: {e}") from e

    groups = response.get('AutoScalingGroups', [])
    if not groups:
        raise TransientReadFailure(f"Auto Scaling group {asg_name} not found")
    return int(groups[0].get('DesiredCapacity', 0))
