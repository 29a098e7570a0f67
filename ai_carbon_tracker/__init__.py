"""
AI Carbon Tracker.

Estimates the carbon footprint of AI-assisted coding sessions from local
session transcripts.
"""
