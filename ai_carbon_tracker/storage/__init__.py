"""
Storage layer for AI Carbon Tracker.
"""
