"""Data models for the Pulp operator."""
