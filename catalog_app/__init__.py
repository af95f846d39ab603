"""Supplier feed ingestion and catalog normalization application package."""
