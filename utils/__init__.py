"""Shared helpers for input validation and CLI output."""
