"""Generation orchestration core.

Import from the submodules directly, e.g.:
    >>> from outfitgen.core.orchestrator import OutfitOrchestrator
    >>> from outfitgen.core.requests import build_outfit_request
"""
