"""Configuration loading for AI Usage Blocks."""
