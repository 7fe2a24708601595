import logging
from typing import Optional

from backlog_autoscaler.aws.ecs import get_desired_task_count, set_desired_task_count
from backlog_autoscaler.exceptions import ApplyFailure, TransientReadFailure
from backlog_autoscaler.scaler import CapacityBounds, ScalingDecision


class TaskCapacityController:
    """
    Applies scaling decisions to the ECS service desired count.

    The desired count last seen or set is remembered so that re-applying the
    same target does not call ECS again. Consecutive apply failures are
    counted; once they reach ``degraded_after`` the controller reports itself
    degraded until the next successful apply. ``last_changed`` tells whether
    the last successful apply actually changed the desired count.
    """

    def __init__(self, aws_wrapper, cluster: str, service_name: str, bounds: CapacityBounds,
                 degraded_after: int = 3):
        self.aws_wrapper = aws_wrapper
        self.cluster = cluster
        self.service_name = service_name
        self.bounds = bounds
        self.degraded_after = degraded_after
        self.desired_count: Optional[int] = None
        self.consecutive_failures = 0
        self.last_changed = False

    @property
    def degraded(self) -> bool:
        return self.consecutive_failures >= self.degraded_after

    def refresh(self) -> None:
        """Initialize the known desired count from the service."""
        try:
            self.desired_count = get_desired_task_count(self.aws_wrapper, self.cluster, self.service_name)
            logging.info(f"Service {self.service_name} currently wants {self.desired_count} tasks")
        except TransientReadFailure as e:
            logging.warning(f"Could not read desired count of {self.service_name}, the next decision will be applied: {e}")
            self.desired_count = None

    def apply(self, decision: ScalingDecision) -> bool:
        """
        Set the desired count to the decision's target clamped to the task bounds.

        Args:
            decision: The scaling decision to apply

        Returns:
            bool: True when the service has the target desired count, False if the update failed
        """
        count = self.bounds.clamp(decision.target)
        if count != decision.target:
            logging.info(f"Clamped target {decision.target} to {count} tasks "
                         f"(bounds: {self.bounds.minimum}-{self.bounds.maximum})")

        if count == self.desired_count:
            logging.debug(f"Service {self.service_name} already wants {count} tasks")
            self.last_changed = False
            self._record_success()
            return True

        try:
            set_desired_task_count(self.aws_wrapper, self.cluster, self.service_name, count)
        except ApplyFailure as e:
            self.consecutive_failures += 1
            logging.error(f"Failed to apply {count} tasks ({self.consecutive_failures} consecutive failures): {e}")
            if self.consecutive_failures == self.degraded_after:
                logging.error(f"Task capacity for {self.service_name} is degraded after "
                              f"{self.consecutive_failures} consecutive failures",
                              extra={'degraded': True, 'knob': 'tasks'})
            return False

        self.desired_count = count
        self.last_changed = True
        self._record_success()
        return True

    def _record_success(self):
        if self.degraded:
            logging.info(f"Task capacity for {self.service_name} recovered from degraded state")
        self.consecutive_failures = 0
