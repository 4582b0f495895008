"""Concrete adapters for the relay core."""
