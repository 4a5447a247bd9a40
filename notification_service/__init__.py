"""Notification dispatch and delivery-state engine."""

__version__ = "0.1.0"
