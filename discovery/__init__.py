"""Business discovery data pipeline."""
