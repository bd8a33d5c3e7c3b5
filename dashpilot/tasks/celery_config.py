"""Celery configuration for the webhook delivery queue."""

from kombu import Exchange, Queue

# ==============================================================================
# BROKER & BACKEND CONFIGURATION
# ==============================================================================

broker_connection_retry_on_startup = True
broker_connection_retry = True
broker_connection_max_retries = 10

broker_pool_limit = 10
broker_heartbeat = 30  # Seconds between heartbeats to detect connection issues

result_backend_transport_options = {
    "socket_keepalive": True,
    "socket_timeout": 30,
    "retry_on_timeout": True,
}

result_expires = 3600  # Results expire after 1 hour

# ==============================================================================
# TASK EXECUTION SETTINGS
# ==============================================================================

# Acknowledgment strategy: a delivery task is only ACKed once its attempt is logged
task_acks_late = True
task_reject_on_worker_lost = True
worker_prefetch_multiplier = 1

task_track_started = True
task_send_sent_event = True

# Serialization: tasks carry only JSON-safe ids and event dicts
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"
timezone = "UTC"
enable_utc = True

# ==============================================================================
# RETRY POLICY
# ==============================================================================

# Delivery retries are scheduled explicitly by the task with an exponential
# countdown; these are fallbacks for any other task.
task_default_retry_delay = 60
task_max_retries = 3

# ==============================================================================
# QUEUE DEFINITIONS
# ==============================================================================

default_exchange = Exchange("default", type="direct", durable=True)
webhook_exchange = Exchange("webhooks", type="direct", durable=True)
dead_letter_exchange = Exchange("dlx", type="direct", durable=True)

task_queues = (
    Queue(
        "default",
        exchange=default_exchange,
        routing_key="default",
        durable=True,
    ),
    # Dedicated queue for outbound webhook deliveries
    Queue(
        "webhooks",
        exchange=webhook_exchange,
        routing_key="webhooks.deliver",
        queue_arguments={
            "x-dead-letter-exchange": "dlx",
            "x-dead-letter-routing-key": "webhooks.failed",
        },
        durable=True,
    ),
    # Dead Letter Queue for tasks the broker could not hand to a worker
    Queue(
        "failed_tasks",
        exchange=dead_letter_exchange,
        routing_key="webhooks.failed",
        durable=True,
        queue_arguments={
            "x-message-ttl": 604800000,  # Keep failed tasks for 7 days
        },
    ),
)

task_default_queue = "default"
task_default_exchange = "default"
task_default_routing_key = "default"

# ==============================================================================
# TASK ROUTING
# ==============================================================================

task_routes = {
    "deliver_webhook": {
        "queue": "webhooks",
        "routing_key": "webhooks.deliver",
    },
}

# ==============================================================================
# WORKER CONFIGURATION
# ==============================================================================

# Deliveries are I/O bound; backoff waits happen on the broker, not in a worker slot
worker_concurrency = 8
worker_max_tasks_per_child = 1000
worker_disable_rate_limits = False

worker_send_task_events = True
worker_log_format = "[%(asctime)s: %(levelname)s/%(processName)s] %(message)s"
worker_task_log_format = "[%(asctime)s: %(levelname)s/%(processName)s][%(task_name)s(%(task_id)s)] %(message)s"

# ==============================================================================
# MESSAGE PERSISTENCE
# ==============================================================================

task_default_delivery_mode = 2  # 2 = persistent, 1 = transient

result_persistent = True

# ==============================================================================
# TASK ANNOTATIONS (task-specific overrides)
# ==============================================================================

task_annotations = {
    "deliver_webhook": {
        "time_limit": 120,  # Hard limit well above the per-attempt HTTP timeout
        "soft_time_limit": 90,
    },
}

# ==============================================================================
# SECURITY & ERROR HANDLING
# ==============================================================================

task_ignore_result = False
task_store_errors_even_if_ignored = True

task_protocol = 2
