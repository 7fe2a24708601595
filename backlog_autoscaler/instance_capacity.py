import logging
import math
from typing import NamedTuple, Optional

from backlog_autoscaler.aws.autoscaling import get_instance_pool_size, set_instance_pool_size
from backlog_autoscaler.aws.ecs import get_scheduled_task_demand
from backlog_autoscaler.exceptions import ApplyFailure, TransientReadFailure
from backlog_autoscaler.scaler import CapacityBounds

# Outcomes of a reconciliation
RESIZED = 'resized'
STEADY = 'steady'
STALE = 'stale'
FAILED = 'failed'


class ReconcileResult(NamedTuple):
    action: str
    demand: Optional[float]
    required: Optional[int]
    pool_size: Optional[int]


def compute_required_instances(demand: float, per_instance_capacity: float, target_utilization: float) -> int:
    """
    Compute the instance count needed to run the demand at the target utilization.

    No demand (or no usable capacity figure) needs no instances, which is
    what lets the pool drain to zero.

    Args:
        demand: Scheduled task demand in resource units
        per_instance_capacity: Resource units one instance provides
        target_utilization: Percentage of instance capacity tasks should consume

    Returns:
        int: Required number of instances
    """
    if demand <= 0 or per_instance_capacity <= 0 or target_utilization <= 0:
        return 0
    return math.ceil(demand / per_instance_capacity * (100.0 / target_utilization))


def step_toward(current: int, required: int, bounds: CapacityBounds, step_min: int, step_max: int) -> int:
    """
    Move the pool size toward the required count by one bounded step.

    The step is ``|required - current|`` clamped to ``[step_min, step_max]``;
    the result is clamped to the pool bounds. Growth may pass the required
    count by up to ``step_min``, but shrinking never goes below it, so a
    steady demand settles on a fixed pool size.
    """
    required = bounds.clamp(required)
    if required == current:
        return current

    step = max(step_min, min(step_max, abs(required - current)))
    if required > current:
        return bounds.clamp(current + step)
    return bounds.clamp(max(required, current - step))


class InstanceCapacityProvider:
    """
    Sizes the Auto Scaling group from the service's scheduled task demand.

    Runs on its own cadence and never looks at the queue or the alarm: the
    only input is the demand read back from ECS, which may lag the task
    controller by up to one reconcile period.
    """

    def __init__(self, aws_wrapper, config):
        self.aws_wrapper = aws_wrapper
        self.cluster = config.cluster_name
        self.service_name = config.service_name
        self.asg_name = config.asg_name
        self.bounds = CapacityBounds(config.min_instances, config.max_instances)
        self.step_min = config.min_scaling_step
        self.step_max = config.max_scaling_step
        self.target_utilization = config.target_utilization
        self.task_cpu_units = config.task_cpu_units
        self.per_instance_capacity = config.instance_cpu_units
        self.reconcile_period = config.reconcile_period
        self.degraded_after = config.degraded_after_failures

        self.pool_size: Optional[int] = None
        self.last_demand: Optional[float] = None
        self.last_demand_at: Optional[float] = None
        self.consecutive_failures = 0

    @property
    def degraded(self) -> bool:
        return self.consecutive_failures >= self.degraded_after

    def refresh(self) -> None:
        """Initialize the known pool size from the Auto Scaling group."""
        try:
            self.pool_size = get_instance_pool_size(self.aws_wrapper, self.asg_name)
            logging.info(f"Instance pool {self.asg_name} currently wants {self.pool_size} instances")
        except TransientReadFailure as e:
            logging.warning(f"Could not read size of instance pool {self.asg_name}: {e}")

    def _read_demand(self, now: float) -> Optional[float]:
        try:
            demand = get_scheduled_task_demand(self.aws_wrapper, self.cluster, self.service_name,
                                               self.task_cpu_units)
        except TransientReadFailure as e:
            if self.last_demand_at is not None and now - self.last_demand_at <= self.reconcile_period:
                logging.warning(f"Using demand from {now - self.last_demand_at:.0f}s ago: {e}")
                return self.last_demand
            logging.warning(f"Skipping instance reconciliation, no fresh demand: {e}")
            return None

        self.last_demand = demand
        self.last_demand_at = now
        return demand

    def reconcile(self, now: float) -> ReconcileResult:
        """
        Read the demand and step the instance pool toward the required size.

        Args:
            now: Current time, used to judge demand staleness

        Returns:
            ReconcileResult: What was done and the figures behind it
        """
        demand = self._read_demand(now)
        if demand is None:
            return ReconcileResult(STALE, None, None, self.pool_size)

        if self.pool_size is None:
            self.refresh()
            if self.pool_size is None:
                return ReconcileResult(STALE, demand, None, None)

        required = compute_required_instances(demand, self.per_instance_capacity, self.target_utilization)
        next_size = step_toward(self.pool_size, required, self.bounds, self.step_min, self.step_max)

        logging.info(f"Instance demand: {demand} units, required: {required} instances, "
                     f"current: {self.pool_size}, next: {next_size}")

        if next_size == self.pool_size:
            self._record_success()
            return ReconcileResult(STEADY, demand, required, self.pool_size)

        try:
            set_instance_pool_size(self.aws_wrapper, self.asg_name, next_size)
        except ApplyFailure as e:
            self.consecutive_failures += 1
            logging.error(f"Failed to resize instance pool ({self.consecutive_failures} consecutive failures): {e}")
            if self.consecutive_failures == self.degraded_after:
                logging.error(f"Instance capacity for {self.asg_name} is degraded after "
                              f"{self.consecutive_failures} consecutive failures",
                              extra={'degraded': True, 'knob': 'instances'})
            return ReconcileResult(FAILED, demand, required, self.pool_size)

        self.pool_size = next_size
        self._record_success()
        return ReconcileResult(RESIZED, demand, required, next_size)

    def _record_success(self):
        if self.degraded:
            logging.info(f"Instance capacity for {self.asg_name} recovered from degraded state")
        self.consecutive_failures = 0
