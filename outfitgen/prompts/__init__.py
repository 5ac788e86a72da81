"""Prompt templates for generation backends.

Examples:
    >>> from outfitgen.prompts import compose, describe
    >>> prompt = compose.get_outfit_prompt(include_shoes=False)
"""

from outfitgen.prompts import compose, describe

__all__ = [
    "compose",
    "describe",
]
