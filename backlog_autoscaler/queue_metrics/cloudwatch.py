import logging
from datetime import datetime, timedelta, timezone

from botocore.exceptions import BotoCoreError, ClientError

from backlog_autoscaler.exceptions import TransientReadFailure


def get_backlog_depth(aws_wrapper, queue_config):
    """
    Get the backlog depth of an SQS queue from its CloudWatch metric.

    Reads ``AWS/SQS ApproximateNumberOfMessagesVisible`` with the ``Sum``
    statistic over the last sampling period, the same feed a CloudWatch alarm
    on the queue would evaluate. CloudWatch publishes SQS metrics with a delay,
    so an empty period is reported as a missing sample rather than as zero.

    Args:
        aws_wrapper: AWS wrapper instance
        queue_config: Dict with:
                     - queue_name: SQS queue name
                     - period: metric period in seconds (default 30)
                     - metric_name: override of the SQS metric name

    Returns:
        float: Sum of the metric over the last period

    Raises:
        TransientReadFailure: If the metric cannot be read or has no datapoint
    """
    queue_name = queue_config['queue_name']
    period = int(queue_config.get('period', 30))
    metric_name = queue_config.get('metric_name', 'ApproximateNumberOfMessagesVisible')

    end_time = datetime.now(timezone.utc)
    start_time = end_time - timedelta(seconds=period)

    try:
        cloudwatch_client = aws_wrapper.create_aws_client('cloudwatch')
        response = cloudwatch_client.get_metric_statistics(
            Namespace='AWS/SQS',
            MetricName=metric_name,
            Dimensions=[
                {
                    'Name': 'QueueName',
                    'Value': queue_name
                },
            ],
            StartTime=start_time,
            EndTime=end_time,
            Period=period,
            Statistics=['Sum']
        )
    except (ClientError, BotoCoreError) as e:
        raise TransientReadFailure(f"Error getting {metric_name} for queue {queue_name}: {e}") from e

    datapoints = response.get('Datapoints', [])
    if not datapoints:
        raise TransientReadFailure(f"No {metric_name} datapoint for queue {queue_name} in the last {period}s")

    latest = max(datapoints, key=lambda dp: dp['Timestamp'])
    logging.debug(f"CloudWatch {metric_name} for {queue_name}: {latest['Sum']} at {latest['Timestamp']}")
    return float(latest['Sum'])
