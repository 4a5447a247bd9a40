"""Command line interface for the notification engine."""
