"""Retry and logging utilities."""
