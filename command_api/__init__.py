"""
Command API for voice buddy.

HTTP surface over the intent pipeline: submit a transcript, read events,
inspect capabilities and endpoint health.
"""
