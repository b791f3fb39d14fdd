"""Catalog extraction, normalization and lifecycle."""
