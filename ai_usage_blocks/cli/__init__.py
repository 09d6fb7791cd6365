"""Command-line interface for AI Usage Blocks."""
