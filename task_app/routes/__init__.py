"""HTTP layer: the task API blueprint and JSON error handlers."""
