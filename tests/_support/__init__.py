"""Shared test helpers (sample entities) for the fieldspine suite."""
