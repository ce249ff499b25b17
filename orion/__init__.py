"""Orion printer backend reconciliation service."""
