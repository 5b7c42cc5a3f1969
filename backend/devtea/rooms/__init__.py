"""Public room listing."""
