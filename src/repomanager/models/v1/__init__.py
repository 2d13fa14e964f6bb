"""Models for the custom resources read by the operator."""
