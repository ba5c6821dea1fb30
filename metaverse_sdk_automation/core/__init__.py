"""Core data model."""
