"""Relay chat-platform conversations to a backend conversational agent."""

__version__ = "0.1.0"
