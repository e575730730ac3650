"""Utility helpers for BoardPilot."""
