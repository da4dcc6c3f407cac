"""Infrastructure layer: cache access and monitoring."""
