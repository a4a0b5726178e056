"""holdfast CLI commands."""
