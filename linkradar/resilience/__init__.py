"""Retry handling for background archival work."""
