"""Chat turn services."""
