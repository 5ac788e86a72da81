"""HTTP API for outfit generation."""
