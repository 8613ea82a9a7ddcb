"""Availability engine: expansion, overlap, topics and the day window."""
