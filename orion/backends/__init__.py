"""Printer backend adapters."""
