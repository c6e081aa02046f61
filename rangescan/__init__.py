"""
rangescan: resumable, bounded-concurrency scanning of IP addresses and ranges.
"""

__version__ = "1.0.0"
