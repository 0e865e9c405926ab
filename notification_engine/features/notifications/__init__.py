"""Notification delivery engine.

Turns domain events into per-channel delivery attempts and tracks each one
through the delivery state machine.

Architecture:
    - Models: Notification, UserNotificationSettings
    - Providers: EMAIL (SMTP), PUSH and SMS (HTTP gateways) behind a registry
    - Preferences: per-user channel and type filtering, default-allow
    - Dispatcher: fan-out, idempotency, concurrent sends, per-record commits
    - State machine: validated compare-and-set transitions
    - Retry: backoff-aware sweep over FAILED records
    - Service: receipt hooks, queries, housekeeping, settings

Example:
    ```python
    coordinator = get_dispatch_coordinator()
    records = await coordinator.dispatch(
        session,
        NotificationEvent(
            event_id="evt-1",
            type=NotificationType.TASK_ASSIGNED,
            user_id="42",
            channels=["EMAIL", "PUSH"],
            title="Task Assigned to You",
            content="Task 'Quarterly report' has been assigned to you.",
        ),
    )
    ```
"""
