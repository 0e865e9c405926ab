"""In-process scheduled jobs (retry sweep, housekeeping)."""
