"""
lottopipe - acquisition and caching pipeline for weekly lottery draw results.
"""

__version__ = "0.1.0"
