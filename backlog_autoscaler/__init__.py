"""
Backlog autoscaler for ECS services and their EC2 capacity.

This package scales an ECS service's desired task count from the backlog of a
work queue using a step scaling policy with a cooldown, and independently
sizes the Auto Scaling group backing the cluster from the scheduled task
demand, down to zero when the queue is idle.
"""

__version__ = "0.1.0"
