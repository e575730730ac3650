"""Shared data models for the BoardPilot pipeline."""
