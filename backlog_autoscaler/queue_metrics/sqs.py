import logging

from botocore.exceptions import BotoCoreError, ClientError

from backlog_autoscaler.exceptions import TransientReadFailure


def get_backlog_depth(aws_wrapper, queue_config):
    """
    Get the current backlog depth of an SQS queue.

    Args:
        aws_wrapper: AWS wrapper instance
        queue_config: Dict with:
                     - queue_url: SQS queue URL
                     - include_in_flight: also count messages being processed (default False)

    Returns:
        float: Number of visible messages, plus in-flight messages when configured

    Raises:
        TransientReadFailure: If the queue attributes cannot be read
    """
    queue_url = queue_config['queue_url']
    try:
        sqs_client = aws_wrapper.create_aws_client('sqs')
        response = sqs_client.get_queue_attributes(
            QueueUrl=queue_url,
            AttributeNames=[
                'ApproximateNumberOfMessages',
                'ApproximateNumberOfMessagesNotVisible'
            ]
        )
    except (ClientError, BotoCoreError) as e:
        raise TransientReadFailure(f"Error getting attributes of queue {queue_url}: {e}") from e

    attributes = response.get('Attributes', {})
    visible = int(attributes.get('ApproximateNumberOfMessages', 0))
    in_flight = int(attributes.get('ApproximateNumberOfMessagesNotVisible', 0))

    logging.debug(f"SQS queue {queue_url} - visible: {visible}, in_flight: {in_flight}")

    if queue_config.get('include_in_flight'):
        return float(visible + in_flight)
    return float(visible)
