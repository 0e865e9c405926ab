"""Notification delivery engine.

Receives domain events, decides per user and per channel whether to notify,
dispatches through pluggable channel providers and tracks every attempt
through a delivery state machine with bounded retries.
"""

__version__ = "0.1.0"
