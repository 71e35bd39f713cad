"""Shared helpers for HTTP responses and time handling."""
