"""Logging and other shared helpers."""
