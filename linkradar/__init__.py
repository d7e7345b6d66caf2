"""LinkRadar content archival pipeline."""

__version__ = "1.0.0"

SERVICE_NAME = "LinkRadar"
