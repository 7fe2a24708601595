import unittest
from unittest import mock

from backlog_autoscaler.exceptions import ApplyFailure, TransientReadFailure
from backlog_autoscaler.instance_capacity import (
    FAILED, RESIZED, STALE, STEADY,
    InstanceCapacityProvider, compute_required_instances, step_toward
)
from backlog_autoscaler.scaler import CapacityBounds

from helpers import make_config


class TestInstanceSizing(unittest.TestCase):
    """Tests for the instance count arithmetic."""

    def test_zero_demand_needs_no_instances(self):
        self.assertEqual(compute_required_instances(0, 2048, 100), 0)

    def test_zero_capacity_needs_no_instances(self):
        """Test that an empty capacity figure maps to zero instead of dividing by zero."""
        self.assertEqual(compute_required_instances(1024, 0, 100), 0)

    def test_full_utilization_rounds_up(self):
        self.assertEqual(compute_required_instances(1024, 2048, 100), 1)
        self.assertEqual(compute_required_instances(2048, 2048, 100), 1)
        self.assertEqual(compute_required_instances(3072, 2048, 100), 2)

    def test_lower_utilization_adds_headroom(self):
        self.assertEqual(compute_required_instances(2048, 2048, 50), 2)

    def test_step_toward_clamps_to_pool_bounds(self):
        self.assertEqual(step_toward(0, 5, CapacityBounds(0, 3), 1, 3), 3)

    def test_step_toward_limits_step_size(self):
        self.assertEqual(step_toward(0, 10, CapacityBounds(0, 10), 1, 3), 3)
        self.assertEqual(step_toward(3, 0, CapacityBounds(0, 3), 1, 1), 2)

    def test_step_toward_reaches_zero(self):
        self.assertEqual(step_toward(3, 0, CapacityBounds(0, 3), 1, 3), 0)

    def test_step_toward_minimum_step(self):
        """Test that growth honors the minimum step but shrinking stops at the required count."""
        self.assertEqual(step_toward(0, 1, CapacityBounds(0, 3), 2, 3), 2)
        self.assertEqual(step_toward(2, 1, CapacityBounds(0, 3), 2, 3), 1)
        self.assertEqual(step_toward(1, 0, CapacityBounds(0, 3), 2, 3), 0)

    def test_step_toward_steady(self):
        self.assertEqual(step_toward(2, 2, CapacityBounds(0, 3), 1, 3), 2)


@mock.patch('backlog_autoscaler.instance_capacity.set_instance_pool_size')
@mock.patch('backlog_autoscaler.instance_capacity.get_instance_pool_size')
@mock.patch('backlog_autoscaler.instance_capacity.get_scheduled_task_demand')
class TestInstanceCapacityProvider(unittest.TestCase):
    """Tests for reconciling the instance pool against task demand."""

    def setUp(self):
        self.aws_wrapper = mock.MagicMock()
        self.provider = InstanceCapacityProvider(self.aws_wrapper, make_config())

    def test_grows_pool_for_demand(self, mock_demand, mock_get_pool_size, mock_set_pool_size):
        mock_demand.return_value = 3 * 1024.0
        mock_get_pool_size.return_value = 0

        result = self.provider.reconcile(now=1000.0)

        self.assertEqual(result.action, RESIZED)
        self.assertEqual(result.required, 2)
        self.assertEqual(result.pool_size, 2)
        mock_set_pool_size.assert_called_once_with(self.aws_wrapper, 'test-asg', 2)

    def test_drains_pool_when_idle(self, mock_demand, mock_get_pool_size, mock_set_pool_size):
        mock_demand.return_value = 0.0
        mock_get_pool_size.return_value = 2

        result = self.provider.reconcile(now=1000.0)

        self.assertEqual(result.action, RESIZED)
        self.assertEqual(result.pool_size, 0)
        mock_set_pool_size.assert_called_once_with(self.aws_wrapper, 'test-asg', 0)

    def test_steady_pool_is_not_touched(self, mock_demand, mock_get_pool_size, mock_set_pool_size):
        mock_demand.return_value = 2048.0
        mock_get_pool_size.return_value = 1

        result = self.provider.reconcile(now=1000.0)

        self.assertEqual(result.action, STEADY)
        mock_set_pool_size.assert_not_called()

    def test_steady_demand_settles_with_large_minimum_step(self, mock_demand, mock_get_pool_size,
                                                           mock_set_pool_size):
        """Test that a minimum step larger than the gap does not make the pool flap."""
        self.provider = InstanceCapacityProvider(self.aws_wrapper,
                                                 make_config(min_scaling_step=2, max_scaling_step=3))
        mock_demand.return_value = 1024.0
        mock_get_pool_size.return_value = 0

        pool_sizes = [self.provider.reconcile(now=1000.0 + 60 * i).pool_size for i in range(6)]

        self.assertEqual(pool_sizes, [2, 1, 1, 1, 1, 1])
        self.assertEqual(mock_set_pool_size.call_count, 2)

    def test_demand_failure_without_history_skips(self, mock_demand, mock_get_pool_size, mock_set_pool_size):
        mock_demand.side_effect = TransientReadFailure('throttled')
        mock_get_pool_size.return_value = 1

        result = self.provider.reconcile(now=1000.0)

        self.assertEqual(result.action, STALE)
        mock_set_pool_size.assert_not_called()

    def test_demand_failure_reuses_recent_demand(self, mock_demand, mock_get_pool_size, mock_set_pool_size):
        """Test that demand up to one reconcile period old is still used."""
        mock_get_pool_size.return_value = 0
        mock_demand.return_value = 2048.0
        self.provider.reconcile(now=1000.0)

        mock_demand.side_effect = TransientReadFailure('throttled')
        self.provider.pool_size = 0
        result = self.provider.reconcile(now=1060.0)
        self.assertEqual(result.action, RESIZED)
        self.assertEqual(result.demand, 2048.0)

        result = self.provider.reconcile(now=1061.0)
        self.assertEqual(result.action, STALE)

    def test_apply_failure_degrades(self, mock_demand, mock_get_pool_size, mock_set_pool_size):
        mock_demand.return_value = 2048.0
        mock_get_pool_size.return_value = 0
        mock_set_pool_size.side_effect = ApplyFailure('rejected')

        for now in (1000.0, 1060.0, 1120.0):
            result = self.provider.reconcile(now=now)
            self.assertEqual(result.action, FAILED)

        self.assertTrue(self.provider.degraded)
        self.assertEqual(self.provider.pool_size, 0)

        mock_set_pool_size.side_effect = None
        self.assertEqual(self.provider.reconcile(now=1180.0).action, RESIZED)
        self.assertFalse(self.provider.degraded)


if __name__ == '__main__':
    unittest.main()
