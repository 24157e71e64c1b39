"""Backend infrastructure: database access and shared utilities."""
