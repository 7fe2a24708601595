"""
Lambda function entry point for AWS Lambda deployments.

Schedule the function (e.g. an EventBridge rule) at the sampling period.
"""

# Configure logging first
from backlog_autoscaler.common.logger import setup_logging

setup_logging()

from backlog_autoscaler.main import lambda_handler


# The handler is specified in the Lambda configuration as "lambda_function.handler"
def handler(event, context):
    """
    AWS Lambda function handler that delegates to the main lambda_handler.

    Args:
        event: AWS Lambda event object
        context: AWS Lambda context object

    Returns:
        Response from the main lambda_handler
    """
    return lambda_handler(event, context)
