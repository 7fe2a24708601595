import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from backlog_autoscaler.alarm import AlarmEvaluator
from backlog_autoscaler.config import Config
from backlog_autoscaler.instance_capacity import InstanceCapacityProvider, ReconcileResult
from backlog_autoscaler.sampler import MetricSampler
from backlog_autoscaler.scaler import (
    DECIDED, REAFFIRMED, CapacityBounds, ScalingDecision, StepScalingPolicy, StepTable
)
from backlog_autoscaler.state.s3_state import load_controller_state, save_controller_state
from backlog_autoscaler.task_capacity import TaskCapacityController

RETRIED = 'retried'


class CapacityController:
    """
    Runs the alarm loop and the instance loop against one service.

    The alarm loop samples the queue, evaluates the alarm and step policy and
    applies decisions to the service desired count. The instance loop sizes
    the instance pool from the demand ECS reports for the service. The loops
    share no state; the stop event is only looked at between cycles, so a
    capacity call in flight always completes before a loop exits.
    """

    def __init__(self, config: Config, aws_wrapper, clock: Callable[[], float] = time.time):
        self.config = config
        self.aws_wrapper = aws_wrapper
        self.clock = clock

        self.sampler = MetricSampler(aws_wrapper, config.queue_type, config.queue_config, clock=clock)
        self.evaluator = AlarmEvaluator(config.alarm_threshold, config.evaluation_periods)
        self.policy = StepScalingPolicy(StepTable(config.step_table), config.cooldown)
        self.tasks = TaskCapacityController(
            aws_wrapper,
            config.cluster_name,
            config.service_name,
            CapacityBounds(config.min_tasks, config.max_tasks),
            degraded_after=config.degraded_after_failures
        )
        self.instances = InstanceCapacityProvider(aws_wrapper, config)

        self.pending_decision: Optional[ScalingDecision] = None
        self.last_outcome = None
        self.last_reconcile: Optional[ReconcileResult] = None

        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._threads = []

    def initialize(self) -> None:
        """Load the external desired count, pool size and, when configured, the durable state."""
        self.tasks.refresh()
        self.instances.refresh()

        if not self.config.s3_config_bucket:
            logging.info("No state bucket configured, cooldown starts unarmed")
            return

        saved = load_controller_state(self.aws_wrapper, self.config.s3_config_bucket,
                                      self.config.cluster_name, self.config.service_name)
        if saved:
            self.policy.restore(saved['last_target'], saved['last_applied_at'])
            self.evaluator.restore(saved['alarm'])
            self.tasks.consecutive_failures = saved.get('task_failures', 0)
            self.instances.consecutive_failures = saved.get('instance_failures', 0)
            if saved.get('pending_target') is not None:
                self.pending_decision = ScalingDecision(target=saved['pending_target'], decided_at=self.clock())

    def save_state(self) -> None:
        """Write the cooldown, alarm window, pending decision and failure counts to S3."""
        if not self.config.s3_config_bucket:
            return
        pending_target = self.pending_decision.target if self.pending_decision is not None else None
        with self._state_lock:
            save_controller_state(
                self.aws_wrapper,
                self.config.s3_config_bucket,
                self.config.cluster_name,
                self.config.service_name,
                self.policy.last_target,
                self.policy.last_applied_at,
                self.evaluator.export_state(),
                pending_target=pending_target,
                task_failures=self.tasks.consecutive_failures,
                instance_failures=self.instances.consecutive_failures
            )

    def run_alarm_cycle(self) -> Dict[str, Any]:
        """
        Sample the backlog once and act on the resulting decision.

        A decision whose apply failed stays pending and is re-issued on the
        next cycle unless a new decision supersedes it.

        Returns:
            dict: Alarm state, policy outcome and the task count after the cycle
        """
        now = self.clock()
        sample = self.sampler.sample()
        with self._state_lock:
            event = self.evaluator.evaluate(sample, now)
        outcome = self.policy.evaluate(event, now)
        self.last_outcome = outcome

        action = outcome.action
        decision = None
        if action in (DECIDED, REAFFIRMED):
            decision = outcome.decision
        elif self.pending_decision is not None:
            decision = self.pending_decision
            action = RETRIED
            logging.info(f"Re-issuing pending decision to scale to {decision.target} tasks")

        applied = None
        if decision is not None:
            applied = self.tasks.apply(decision)
            if applied:
                self.policy.mark_applied(decision, self.clock(), changed=self.tasks.last_changed)
                self.pending_decision = None
            else:
                self.pending_decision = decision

        self.save_state()

        return {
            'alarm_state': event.state.value,
            'magnitude': event.magnitude,
            'outcome': action,
            'reason': outcome.reason,
            'target': decision.target if decision is not None else None,
            'applied': applied,
            'desired_tasks': self.tasks.desired_count
        }

    def run_instance_cycle(self) -> ReconcileResult:
        self.last_reconcile = self.instances.reconcile(self.clock())
        self.save_state()
        return self.last_reconcile

    def _run_loop(self, cycle: Callable[[], Any], period: float, name: str) -> None:
        logging.info(f"{name} loop running every {period}s")
        while not self._stop_event.is_set():
            try:
                cycle()
            except Exception as e:
                # A loop must outlive a single bad cycle; the next one starts fresh
                logging.error(f"Unexpected error in {name} loop: {e}", exc_info=True)
            self._stop_event.wait(period)
        logging.info(f"{name} loop stopped")

    def start(self) -> None:
        """Initialize from external state and start both loops in background threads."""
        self.initialize()
        self._stop_event.clear()
        self._threads = [
            threading.Thread(target=self._run_loop, name='alarm-loop', daemon=True,
                             args=(self.run_alarm_cycle, self.config.sampling_period, 'alarm')),
            threading.Thread(target=self._run_loop, name='instance-loop', daemon=True,
                             args=(self.run_instance_cycle, self.config.reconcile_period, 'instance')),
        ]
        for thread in self._threads:
            thread.start()

    def stop(self, timeout: float = None) -> None:
        """Stop both loops after their current cycle and wait for them."""
        logging.info("Stopping capacity controller")
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
            if thread.is_alive():
                logging.warning(f"{thread.name} did not finish within {timeout}s")
        self._threads = []

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def status(self) -> Dict[str, Any]:
        """Observable controller state, including degraded flags for each capacity knob."""
        last_outcome = self.last_outcome.action if self.last_outcome is not None else None
        return {
            'alarm_state': self.evaluator.state.value,
            'last_outcome': last_outcome,
            'last_target': self.policy.last_target,
            'last_applied_at': self.policy.last_applied_at,
            'pending_target': self.pending_decision.target if self.pending_decision is not None else None,
            'desired_tasks': self.tasks.desired_count,
            'pool_size': self.instances.pool_size,
            'task_failures': self.tasks.consecutive_failures,
            'instance_failures': self.instances.consecutive_failures,
            'tasks_degraded': self.tasks.degraded,
            'instances_degraded': self.instances.degraded,
            'degraded': self.tasks.degraded or self.instances.degraded
        }
