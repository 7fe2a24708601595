import unittest
from unittest import mock

from botocore.exceptions import ClientError

from backlog_autoscaler.aws.autoscaling import get_instance_pool_size, set_instance_pool_size
from backlog_autoscaler.aws.ecs import get_scheduled_task_demand, set_desired_task_count
from backlog_autoscaler.exceptions import ApplyFailure, TransientReadFailure


def client_error(operation):
    return ClientError({'Error': {'Code': 'ThrottlingException', 'Message': 'slow down'}}, operation)


class TestEcs(unittest.TestCase):
    """Tests for the ECS capacity calls."""

    def setUp(self):
        self.aws_wrapper = mock.MagicMock()
        self.ecs_client = self.aws_wrapper.create_aws_client.return_value

    def test_set_desired_task_count(self):
        set_desired_task_count(self.aws_wrapper, 'cluster', 'service', 3)

        self.aws_wrapper.create_aws_client.assert_called_with('ecs')
        self.ecs_client.update_service.assert_called_once_with(cluster='cluster', service='service', desiredCount=3)

    def test_set_desired_task_count_failure(self):
        self.ecs_client.update_service.side_effect = client_error('UpdateService')

        with self.assertRaises(ApplyFailure):
            set_desired_task_count(self.aws_wrapper, 'cluster', 'service', 3)

    def test_scheduled_demand_counts_pending_tasks(self):
        """Test that demand covers desired tasks even before they are placed."""
        self.ecs_client.describe_services.return_value = {
            'services': [{'desiredCount': 3, 'runningCount': 1, 'pendingCount': 0}]
        }

        self.assertEqual(get_scheduled_task_demand(self.aws_wrapper, 'cluster', 'service', 1024), 3072.0)

    def test_scheduled_demand_covers_draining_tasks(self):
        self.ecs_client.describe_services.return_value = {
            'services': [{'desiredCount': 0, 'runningCount': 2, 'pendingCount': 0}]
        }

        self.assertEqual(get_scheduled_task_demand(self.aws_wrapper, 'cluster', 'service', 1024), 2048.0)

    def test_missing_service(self):
        self.ecs_client.describe_services.return_value = {'services': []}

        with self.assertRaises(TransientReadFailure):
            get_scheduled_task_demand(self.aws_wrapper, 'cluster', 'service', 1024)


class TestAutoScaling(unittest.TestCase):
    """Tests for the Auto Scaling group capacity calls."""

    def setUp(self):
        self.aws_wrapper = mock.MagicMock()
        self.autoscaling_client = self.aws_wrapper.create_aws_client.return_value

    def test_set_instance_pool_size(self):
        set_instance_pool_size(self.aws_wrapper, 'asg', 0)

        self.autoscaling_client.set_desired_capacity.assert_called_once_with(
            AutoScalingGroupName='asg', DesiredCapacity=0, HonorCooldown=False)

    def test_set_instance_pool_size_failure(self):
        self.autoscaling_client.set_desired_capacity.side_effect = client_error('SetDesiredCapacity')

        with self.assertRaises(ApplyFailure):
            set_instance_pool_size(self.aws_wrapper, 'asg', 2)

    def test_get_instance_pool_size(self):
        self.autoscaling_client.describe_auto_scaling_groups.return_value = {
            'AutoScalingGroups': [{'DesiredCapacity': 2}]
        }

        self.assertEqual(get_instance_pool_size(self.aws_wrapper, 'asg'), 2)

    def test_missing_group(self):
        self.autoscaling_client.describe_auto_scaling_groups.return_value = {'AutoScalingGroups': []}

        with self.assertRaises(TransientReadFailure):
            get_instance_pool_size(self.aws_wrapper, 'asg')


if __name__ == '__main__':
    unittest.main()
