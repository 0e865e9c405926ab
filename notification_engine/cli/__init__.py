"""Management CLI for the notification engine."""
