"""
Test Tools Package
Tests for the tools module (recurrence, dose keys, lifecycle, reconciler, statistics)
"""

__all__ = [
    "test_recurrence",
    "test_dose_keys",
    "test_dose_lifecycle",
    "test_reconciler",
    "test_adherence_stats",
]
