"""Relay orchestration: admission, routing, queueing, streaming and permissions."""
