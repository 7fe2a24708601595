import logging
from datetime import datetime
from typing import Iterable, List, NamedTuple, Optional

from backlog_autoscaler.alarm import AlarmEvent, AlarmState
from backlog_autoscaler.config import STEP_DIRECTIONS, StepAdjustment
from backlog_autoscaler.exceptions import ConfigurationError

# Outcomes of a policy evaluation
DECIDED = 'decided'
REAFFIRMED = 'reaffirmed'
SUPPRESSED = 'suppressed'
NO_OP = 'no_op'


class CapacityBounds(NamedTuple):
    minimum: int
    maximum: int

    def clamp(self, value: int) -> int:
        return max(self.minimum, min(self.maximum, value))


class ScalingDecision(NamedTuple):
    target: int
    decided_at: float


class ScalingOutcome(NamedTuple):
    action: str
    decision: Optional[ScalingDecision]
    reason: str


class StepTable:
    """
    Ordered scale-in and scale-out steps over the backlog magnitude.

    A scale-in step with bound ``b`` covers magnitudes ``prev < m <= b``, the
    lowest one extending to minus infinity. A scale-out step with bound ``b``
    covers ``b <= m < next``, the highest one extending to infinity. The
    greatest scale-in bound must equal the smallest scale-out bound so the
    table covers every magnitude; that shared bound is claimed by both sides
    and resolves to scale-out.
    """

    def __init__(self, steps: Iterable[StepAdjustment]):
        steps = list(steps)
        for step in steps:
            if step.direction not in STEP_DIRECTIONS:
                raise ConfigurationError(f"Step direction must be one of {STEP_DIRECTIONS}, got {step.direction!r}")
            if isinstance(step.target, bool) or not isinstance(step.target, int) or step.target < 0:
                raise ConfigurationError(f"Step target must be a non-negative integer, got {step.target!r}")

        self.scale_in = sorted((s for s in steps if s.direction == 'in'), key=lambda s: s.bound)
        self.scale_out = sorted((s for s in steps if s.direction == 'out'), key=lambda s: s.bound)

        if not self.scale_in or not self.scale_out:
            raise ConfigurationError("Step table needs at least one scale-in and one scale-out step")

        for side in (self.scale_in, self.scale_out):
            bounds = [s.bound for s in side]
            if len(set(bounds)) != len(bounds):
                raise ConfigurationError(f"Duplicate bounds in {side[0].direction} steps: {bounds}")

        highest_in = self.scale_in[-1].bound
        lowest_out = self.scale_out[0].bound
        if highest_in < lowest_out:
            raise ConfigurationError(f"Step table has a gap between {highest_in} and {lowest_out}")
        if highest_in > lowest_out:
            raise ConfigurationError(f"Step table intervals overlap between {lowest_out} and {highest_in}")

        self.boundary = lowest_out

    def matching(self, magnitude: float) -> List[StepAdjustment]:
        """Return every step whose interval contains the magnitude."""
        matches = []
        previous = None
        for step in self.scale_in:
            if magnitude <= step.bound and (previous is None or magnitude > previous):
                matches.append(step)
            previous = step.bound

        for index, step in enumerate(self.scale_out):
            upper = self.scale_out[index + 1].bound if index + 1 < len(self.scale_out) else None
            if magnitude >= step.bound and (upper is None or magnitude < upper):
                matches.append(step)
        return matches

    def resolve(self, magnitude: float) -> StepAdjustment:
        """Return the single step for the magnitude; scale-out wins on the shared bound."""
        matches = self.matching(magnitude)
        if len(matches) > 1:
            logging.debug(f"Magnitude {magnitude} is on the shared bound {self.boundary}, resolving to scale-out")
            return next(s for s in matches if s.direction == 'out')
        return matches[0]


def calculate_target_task_count(state: AlarmState, magnitude: Optional[float], step_table: StepTable) -> Optional[int]:
    """
    Map an alarm state and its magnitude to an exact task count.

    OK evaluates the scale-in steps and ALARM the scale-out steps, the way an
    alarm's OK and ALARM actions trigger separate policies. A magnitude that
    resolves to the other direction's step matches nothing.

    Returns:
        int: Target task count, or None when no step applies
    """
    if state == AlarmState.INSUFFICIENT_DATA or magnitude is None:
        return None

    step = step_table.resolve(magnitude)
    expected_direction = 'out' if state == AlarmState.ALARM else 'in'
    if step.direction != expected_direction:
        logging.info(f"Magnitude {magnitude} resolves to a scale-{step.direction} step "
                     f"while alarm is {state.value}, no step applies")
        return None
    return step.target


def can_scale(now: float, last_applied_at: Optional[float], cooldown: float) -> bool:
    """
    Check if we can scale based on the cooldown period.

    The cooldown applies to every decision regardless of direction; a decision
    exactly at the cooldown boundary is allowed.

    Args:
        now: Current time
        last_applied_at: Time the last decision was applied, None if never
        cooldown: Cooldown period in seconds

    Returns:
        bool: Whether a scaling decision is allowed
    """
    if last_applied_at is None:
        return True

    elapsed_time = now - last_applied_at
    if elapsed_time >= cooldown:
        return True

    last_time_readable = datetime.fromtimestamp(last_applied_at).strftime('%Y-%m-%d %H:%M:%S')
    logging.info(f"In cooldown period. Last decision applied: {last_time_readable}, "
                 f"Elapsed: {elapsed_time:.2f}s, Remaining: {cooldown - elapsed_time:.2f}s")
    return False


class StepScalingPolicy:
    """
    Step scaling with a single cooldown shared by both directions.

    Only a decision that actually changed the desired count starts the
    cooldown (see ``mark_applied``). A decision for the target already
    applied is a reaffirmation: it is re-issued but does not restart the
    cooldown. A decision the service already matched needs no ECS call and
    leaves the cooldown unarmed.
    """

    def __init__(self, step_table: StepTable, cooldown: float):
        self.step_table = step_table
        self.cooldown = cooldown
        self.last_target: Optional[int] = None
        self.last_applied_at: Optional[float] = None

    def evaluate(self, event: AlarmEvent, now: float) -> ScalingOutcome:
        target = calculate_target_task_count(event.state, event.magnitude, self.step_table)
        if target is None:
            return ScalingOutcome(NO_OP, None, f"no step applies for {event.state.value} at {event.magnitude}")

        decision = ScalingDecision(target=target, decided_at=now)

        if not can_scale(now, self.last_applied_at, self.cooldown):
            logging.info(f"Suppressed decision to scale to {target} tasks during cooldown",
                         extra={'outcome': SUPPRESSED, 'target': target})
            return ScalingOutcome(SUPPRESSED, decision, "cooldown active")

        if target == self.last_target:
            logging.debug(f"Reaffirming {target} tasks for alarm state {event.state.value}")
            return ScalingOutcome(REAFFIRMED, decision, f"target {target} already applied")

        logging.info(f"Decided to scale to {target} tasks (alarm: {event.state.value}, magnitude: {event.magnitude})",
                     extra={'outcome': DECIDED, 'target': target})
        return ScalingOutcome(DECIDED, decision, f"alarm {event.state.value} at {event.magnitude}")

    def mark_applied(self, decision: ScalingDecision, applied_at: float, changed: bool = True) -> None:
        """Record a successfully applied decision; a new target that changed the service starts the cooldown."""
        if changed and (decision.target != self.last_target or self.last_applied_at is None):
            self.last_applied_at = applied_at
        self.last_target = decision.target

    def restore(self, last_target: Optional[int], last_applied_at: Optional[float]) -> None:
        self.last_target = last_target
        self.last_applied_at = last_applied_at
        logging.info(f"Restored last scaling decision: target={last_target}, applied_at={last_applied_at}")
