"""
AI Usage Blocks.

Turns coding-agent usage logs into billing-window reports.
"""

__version__ = "0.1.0"
