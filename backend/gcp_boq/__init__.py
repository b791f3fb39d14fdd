"""GCP Bill-of-Quantity pricing engine."""

__version__ = "1.0.0"
