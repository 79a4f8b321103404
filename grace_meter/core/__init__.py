"""
Core modules for Grace Meter.

This package contains the settlement engine: categorization, consent
resolution, week boundaries, weekly aggregation, settlement and streaks.
"""
