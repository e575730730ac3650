"""Core interpretation, mapping, validation and execution pipeline."""
