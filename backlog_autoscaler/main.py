import logging
import signal
import threading
from typing import Dict, Any

from backlog_autoscaler.aws.wrapper import AWSWrapper
from backlog_autoscaler.common.logger import setup_logging
from backlog_autoscaler.config import load_config, validate_config, Config
from backlog_autoscaler.controller import CapacityController
from backlog_autoscaler.exceptions import ConfigurationError

STOP_TIMEOUT = 60


def create_controller(config: Config) -> CapacityController:
    """
    Validate the configuration and build a controller for it.

    Raises:
        ConfigurationError: If the configuration is not usable
    """
    validate_config(config)
    aws_wrapper = AWSWrapper(
        sso_profile_name=config.sso_profile,
        region_name=config.region
    )
    return CapacityController(config, aws_wrapper)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler running one cycle of both capacity loops.

    Meant to be invoked on a schedule matching the sampling period. Set
    S3_CONFIG_BUCKET so the cooldown and the alarm window carry over between
    invocations; without it every invocation starts with no cooldown.

    Args:
        event: AWS Lambda event object, can contain configuration overrides
        context: AWS Lambda context object

    Returns:
        dict: Alarm state, scaling outcome, instance reconciliation and controller status
    """
    try:
        config = load_config(event)
        controller = create_controller(config)
    except ConfigurationError as e:
        logging.error(f"Refusing to run with invalid configuration: {e}")
        return {"statusCode": 500, "error": str(e)}

    logging.info(f"Starting capacity check for service {config.service_name} in cluster {config.cluster_name}")

    controller.initialize()
    alarm_result = controller.run_alarm_cycle()
    reconcile = controller.run_instance_cycle()
    status = controller.status()

    if status['degraded']:
        logging.error(f"Capacity controller is degraded: {status}")

    return {
        **alarm_result,
        'instance_action': reconcile.action,
        'required_instances': reconcile.required,
        'pool_size': reconcile.pool_size,
        'status': status
    }


def serve(controller: CapacityController, stop_event: threading.Event, stop_timeout: float = STOP_TIMEOUT) -> None:
    """
    Run the controller until the stop event is set, then stop it gracefully.

    Args:
        controller: Controller to run
        stop_event: Event signalling shutdown
        stop_timeout: Seconds to wait for in-flight capacity calls
    """
    controller.start()
    try:
        stop_event.wait()
    finally:
        controller.stop(stop_timeout)
        logging.info(f"Capacity controller stopped with status {controller.status()}")


def run(event: Dict[str, Any] = None) -> None:
    """Long-running entry point: run both loops until SIGTERM or SIGINT."""
    setup_logging()
    controller = create_controller(load_config(event))

    stop_event = threading.Event()

    def _handle_signal(signum, frame):
        logging.info(f"Received signal {signum}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    serve(controller, stop_event)
