"""Logging setup and observer dispatch."""
