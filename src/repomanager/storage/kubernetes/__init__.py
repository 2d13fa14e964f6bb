"""Storage layers for Kubernetes objects."""
