"""Health and status reporting."""
