"""Storage layers for the Pulp operator."""
