"""Core infrastructure: configuration, transport, retry and rate limiting."""
