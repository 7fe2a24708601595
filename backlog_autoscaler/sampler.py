import logging
import time
from typing import Callable, Optional

from backlog_autoscaler.alarm import BacklogSample
from backlog_autoscaler.exceptions import ConfigurationError, TransientReadFailure

# Queue metric providers
from backlog_autoscaler.queue_metrics import cloudwatch, redis, sqs

QUEUE_PROVIDERS = {
    'sqs': sqs,
    'cloudwatch': cloudwatch,
    'redis': redis
}


class MetricSampler:
    """Reads the backlog depth of the configured queue once per call."""

    def __init__(self, aws_wrapper, queue_type: str, queue_config: dict, clock: Callable[[], float] = time.time):
        queue_type = queue_type.lower()
        if queue_type not in QUEUE_PROVIDERS:
            supported = ', '.join(QUEUE_PROVIDERS.keys())
            raise ConfigurationError(f"Unsupported queue type: {queue_type}. Supported types: {supported}")

        self.aws_wrapper = aws_wrapper
        self.queue_type = queue_type
        self.queue_config = queue_config
        self.provider = QUEUE_PROVIDERS[queue_type]
        self.clock = clock

    def sample(self) -> Optional[BacklogSample]:
        """
        Get the current backlog depth.

        Returns:
            BacklogSample: The sample, or None when the queue could not be read
        """
        try:
            depth = self.provider.get_backlog_depth(self.aws_wrapper, self.queue_config)
        except TransientReadFailure as e:
            logging.warning(f"Missing {self.queue_type} backlog sample: {e}")
            return None

        sample = BacklogSample(timestamp=self.clock(), depth=depth)
        logging.info(f"Sampled {self.queue_type} backlog depth: {depth}")
        return sample
