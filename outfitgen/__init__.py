"""Outfit generation orchestrator.

Composes top/bottom/shoe garment images into a single outfit image using
rate-limited external image-generation backends, with two-tier caching and a
local composite fallback.
"""

__version__ = "0.1.0"
