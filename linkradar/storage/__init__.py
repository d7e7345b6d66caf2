"""Persistence layer: database engine, models and the archive state machine."""
