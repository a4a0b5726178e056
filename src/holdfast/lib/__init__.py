"""Shared library code for holdfast (errors, flags and logging)."""
