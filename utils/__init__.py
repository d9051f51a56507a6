"""Helpers shared by the app factory and the blueprint modules."""
