"""Shared helpers used across pkgrestore modules."""
