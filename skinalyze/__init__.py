"""
Skinalyze - skin lesion classification and offline-first clinical records.
"""
__version__ = "1.0.0"
