"""
Grace Meter.

Meters time spent on flagged domain categories and settles it weekly.
"""

__version__ = "0.1.0"
