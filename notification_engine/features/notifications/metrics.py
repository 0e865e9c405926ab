"""Prometheus metrics for the notification engine.

Usage:
    from notification_engine.features.notifications.metrics import (
        notification_created_total,
        notification_delivered_total,
    )

    notification_created_total.labels(
        notification_type="TASK_ASSIGNED",
        channel="EMAIL",
    ).inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Lifecycle
# =============================================================================

notification_created_total = Counter(
    "notification_created_total",
    "Total number of notification records created",
    labelnames=["notification_type", "channel"],
)

notification_duplicate_total = Counter(
    "notification_duplicate_total",
    "Dispatches that returned an existing record for the same event and channel",
    labelnames=["channel"],
)

notification_delivered_total = Counter(
    "notification_delivered_total",
    "Delivery outcomes by channel and resulting status",
    labelnames=["channel", "status"],
)
"""
Labels:
    channel: EMAIL, PUSH, SMS, ...
    status: SENT, FAILED, CANCELLED, DELIVERED, READ
"""

notification_errors_total = Counter(
    "notification_errors_total",
    "Failed or cancelled attempts by channel and error category",
    labelnames=["channel", "error_category"],
)

notification_unsupported_channel_total = Counter(
    "notification_unsupported_channel_total",
    "Allowed channels that had no registered provider at dispatch time",
    labelnames=["channel"],
)

# =============================================================================
# Delivery performance
# =============================================================================

notification_delivery_duration_seconds = Histogram(
    "notification_delivery_duration_seconds",
    "Provider send duration in seconds",
    labelnames=["channel"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# =============================================================================
# Retry
# =============================================================================

notification_retry_total = Counter(
    "notification_retry_total",
    "Retry attempts started by the retry sweep",
    labelnames=["channel"],
)

notification_retry_exhausted_total = Counter(
    "notification_retry_exhausted_total",
    "Notifications that reached the retry cap",
    labelnames=["channel"],
)

notification_stale_pending_total = Counter(
    "notification_stale_pending_total",
    "PENDING notifications failed by the retry sweep after no send outcome was recorded",
    labelnames=["channel"],
)

notification_retry_sweep_duration_seconds = Histogram(
    "notification_retry_sweep_duration_seconds",
    "Duration of one retry sweep",
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
)

# =============================================================================
# State machine and preferences
# =============================================================================

notification_illegal_transition_total = Counter(
    "notification_illegal_transition_total",
    "Rejected status change requests",
    labelnames=["current_status", "requested_status"],
)

notification_concurrent_update_total = Counter(
    "notification_concurrent_update_total",
    "Compare-and-set writes that lost to a concurrent writer",
    labelnames=["requested_status"],
)

notification_preference_degraded_total = Counter(
    "notification_preference_degraded_total",
    "Preference lookups that failed and fell back to default-allow",
)

# =============================================================================
# Housekeeping and health
# =============================================================================

notification_housekeeping_deleted_total = Counter(
    "notification_housekeeping_deleted_total",
    "Records removed by the housekeeping job",
)

notification_provider_enabled = Gauge(
    "notification_provider_enabled",
    "1 when the channel provider is enabled, 0 when disabled",
    labelnames=["channel"],
)
