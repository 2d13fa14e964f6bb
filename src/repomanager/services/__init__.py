"""Services implementing the reconciliation loop."""
