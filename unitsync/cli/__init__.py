"""Command-line interface for unitsync."""
