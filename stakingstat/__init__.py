"""
Particl staking reward statistics collector.
"""

__version__ = "0.1.0"
