"""Structured events shared by the intent pipeline and the command API."""
