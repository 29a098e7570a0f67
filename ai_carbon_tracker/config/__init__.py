"""
Configuration for AI Carbon Tracker.
"""
