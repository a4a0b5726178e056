"""Command-line interface for holdfast."""
