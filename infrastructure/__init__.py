"""Infrastructure layer: persistence and audit logging."""
