from backlog_autoscaler.config import Config, parse_step_table


class FakeClock:
    """Manually advanced clock for cooldown and staleness arithmetic."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_config(**overrides):
    """Reference configuration: 0-3 tasks, 0-3 instances, 30s sampling and cooldown."""
    config = Config(
        cluster_name='test-cluster',
        service_name='test-service',
        min_tasks=0,
        max_tasks=3,
        queue_type='sqs',
        queue_config={'queue_url': 'https://sqs.us-east-1.amazonaws.com/123456789012/work'},
        sampling_period=30.0,
        evaluation_periods=1,
        alarm_threshold=0.0,
        step_table=parse_step_table(None, 3),
        cooldown=30.0,
        asg_name='test-asg',
        min_instances=0,
        max_instances=3,
        min_scaling_step=1,
        max_scaling_step=3,
        target_utilization=100.0,
        task_cpu_units=1024,
        instance_cpu_units=2048,
        reconcile_period=60.0,
        degraded_after_failures=3,
        region='us-east-1',
        sso_profile=None,
        s3_config_bucket=None
    )
    return config._replace(**overrides)
