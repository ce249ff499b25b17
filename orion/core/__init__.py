"""Core infrastructure: configuration, logging, errors and task helpers."""
