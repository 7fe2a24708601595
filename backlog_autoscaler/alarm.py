import logging
from collections import deque
from enum import Enum
from typing import List, NamedTuple, Optional


class AlarmState(Enum):
    OK = 'OK'
    ALARM = 'ALARM'
    INSUFFICIENT_DATA = 'INSUFFICIENT_DATA'


class BacklogSample(NamedTuple):
    """Backlog depth of the queue at a point in time."""
    timestamp: float
    depth: float


class AlarmEvent(NamedTuple):
    """Result of one alarm evaluation, emitted whether or not the state changed."""
    state: AlarmState
    magnitude: Optional[float]
    changed: bool
    timestamp: float


class AlarmEvaluator:
    """
    Turns backlog samples into an alarm state.

    The window holds one slot per evaluation period. A missing sample (the
    sampler could not read the queue) still takes a slot, so a failed read
    pushes the alarm into INSUFFICIENT_DATA instead of being skipped.

    The aggregate of the window is the sum of its samples. The alarm goes to
    ALARM when the aggregate is strictly greater than the threshold and to OK
    otherwise.
    """

    def __init__(self, threshold: float, evaluation_periods: int = 1):
        self.threshold = threshold
        self.evaluation_periods = evaluation_periods
        self.state = AlarmState.INSUFFICIENT_DATA
        self._window = deque(maxlen=evaluation_periods)

    def evaluate(self, sample: Optional[BacklogSample], now: float) -> AlarmEvent:
        """
        Consume one sample slot and return the resulting alarm event.

        Args:
            sample: The new sample, or None when the read failed
            now: Evaluation time, used when there is no sample

        Returns:
            AlarmEvent: Current state, the window aggregate and whether the state changed
        """
        self._window.append(sample)

        samples = [s for s in self._window if s is not None]
        if len(samples) < self.evaluation_periods:
            new_state = AlarmState.INSUFFICIENT_DATA
            magnitude = None
        else:
            magnitude = sum(s.depth for s in samples)
            new_state = AlarmState.ALARM if magnitude > self.threshold else AlarmState.OK

        changed = new_state != self.state
        if changed:
            logging.info(f"Alarm state changed from {self.state.value} to {new_state.value} "
                         f"(aggregate: {magnitude}, threshold: {self.threshold})")
        else:
            logging.debug(f"Alarm state remains {new_state.value} (aggregate: {magnitude})")
        self.state = new_state

        timestamp = sample.timestamp if sample is not None else now
        return AlarmEvent(state=new_state, magnitude=magnitude, changed=changed, timestamp=timestamp)

    def export_state(self) -> dict:
        return {
            'state': self.state.value,
            'window': [list(s) if s is not None else None for s in self._window]
        }

    def restore(self, saved: dict) -> None:
        """Restore the state and window saved by export_state. Unknown values are ignored."""
        try:
            state = AlarmState(saved.get('state', AlarmState.INSUFFICIENT_DATA.value))
            window: List[Optional[BacklogSample]] = [
                BacklogSample(float(entry[0]), float(entry[1])) if entry is not None else None
                for entry in saved.get('window', [])
            ]
        except (TypeError, ValueError, IndexError) as e:
            logging.warning(f"Ignoring malformed saved alarm state {saved!r}: {e}")
            return

        self.state = state
        self._window.clear()
        self._window.extend(window[-self.evaluation_periods:])
        logging.info(f"Restored alarm state {state.value} with {len(self._window)} window slots")
