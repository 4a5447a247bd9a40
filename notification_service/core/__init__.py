"""Core building blocks: settings, exceptions, database and events."""
