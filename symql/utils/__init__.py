"""Utility modules shared across symql."""
