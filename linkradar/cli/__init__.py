"""Command-line interface for LinkRadar."""
