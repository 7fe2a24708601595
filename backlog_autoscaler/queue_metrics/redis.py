import logging
import redis

from backlog_autoscaler.exceptions import ConfigurationError, TransientReadFailure


def get_backlog_depth(aws_wrapper, redis_config):
    """
    Get the current backlog depth of a Redis-based queue.

    Supports both Redis Lists and Redis Streams as queue implementations.

    Args:
        aws_wrapper: AWS wrapper instance (unused, kept for a uniform provider interface)
        redis_config: Dict containing Redis configuration with:
                     - host: Redis host
                     - port: Redis port
                     - password: Redis password
                     - use_ssl: whether to connect over TLS (default True)
                     - queue_key: Key name for the queue
                     - queue_type: 'list' or 'stream'
                     - consumer_group: Consumer group name (for stream-based queues)

    Returns:
        float: Number of messages waiting to be picked up

    Raises:
        TransientReadFailure: If Redis cannot be reached or the key cannot be read
    """
    queue_type = redis_config.get('queue_type', 'list')
    queue_key = redis_config['queue_key']

    if queue_type not in ('list', 'stream'):
        raise ConfigurationError(f"Unsupported Redis queue type: {queue_type}")

    try:
        r = redis.Redis(
            host=redis_config['host'],
            port=int(redis_config.get('port') or 6379),
            password=redis_config.get('password'),
            ssl=str(redis_config.get('use_ssl', True)).lower() in ('true', '1', 't', 'yes'),
            socket_timeout=5,
            decode_responses=True
        )

        if queue_type == 'list':
            depth = r.llen(queue_key)
            logging.debug(f"Redis list queue {queue_key} has {depth} pending messages")
            return float(depth)

        stream_info = r.xinfo_stream(queue_key)
        total_messages = stream_info['length']

        consumer_group = redis_config.get('consumer_group')
        if not consumer_group:
            return float(total_messages)

        for group in r.xinfo_groups(queue_key):
            if group['name'] == consumer_group:
                # Redis >= 7 reports the undelivered backlog directly
                lag = group.get('lag')
                if lag is not None:
                    depth = lag
                else:
                    depth = max(0, total_messages - group['pending'])
                logging.debug(f"Redis stream {queue_key} has {depth} undelivered messages "
                              f"for group {consumer_group}")
                return float(depth)

        raise TransientReadFailure(f"Consumer group {consumer_group} not found on stream {queue_key}")

    except redis.exceptions.RedisError as e:
        raise TransientReadFailure(f"Error getting Redis metrics for {queue_key}: {e}") from e
