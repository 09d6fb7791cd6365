"""
Core modules for AI Usage Blocks.

This package contains the usage engine: delta reconciliation, session
block segmentation, burn rate projection, budget classification, pricing
and report assembly.
"""
