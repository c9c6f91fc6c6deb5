"""Temporal activities."""
