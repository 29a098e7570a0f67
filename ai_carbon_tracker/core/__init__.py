"""
Core modules for AI Carbon Tracker.

This package contains the core functionality for emission estimates,
milestone tiers, usage accumulation and transcript ingestion.
"""
