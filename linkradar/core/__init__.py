"""Core configuration, logging and shared key definitions."""
