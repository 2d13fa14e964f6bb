"""Per-tier phases of the reconciliation of a ``Pulp`` object."""
