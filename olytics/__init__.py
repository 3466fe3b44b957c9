"""
Olytics Content Archive — event aggregation into monthly MongoDB archives.
"""

__version__ = "1.0.0"
