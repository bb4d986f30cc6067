"""
guugle

A small web crawler and keyword search engine backed by a single SQLite table.
"""

__version__ = "1.0.0"
__description__ = "Multi-threaded web crawler with lease-based frontier and keyword ranking"
