"""Cache key derivation.

Two keys are derived per request:

- fingerprint: content-based, used by the in-memory tier. Covers provider,
  model, kind, every input (path or content hash) and the instruction.
- identity: derived from caller-supplied stable entity ids, used by the
  durable tier so results survive transient image paths and sessions.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any

from outfitgen.core.types import BODY_ROLE, GenerationRequest, ImageInput


def stable_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def short_hash(text: str, n: int = 12) -> str:
    return sha256_text(text)[:n]


@dataclass(frozen=True)
class CacheKeys:
    """Keys for one request plus the metadata recorded with durable entries."""

    fingerprint: str
    identity: str | None = None
    entity_ids: dict[str, str] = field(default_factory=dict)
    provider: str = ""
    model: str = ""

    def short(self, n: int = 12) -> str:
        return self.fingerprint[:n]


def input_identity(image: ImageInput) -> str:
    """Path/URL of an input, or a content hash for raw bytes and data URLs."""
    if isinstance(image.ref, bytes):
        return f"sha256:{sha256_bytes(image.ref)}"
    if image.ref.startswith("data:"):
        return f"sha256:{sha256_text(image.ref)}"
    return image.ref


def compute_fingerprint(request: GenerationRequest, provider_id: str, model_id: str) -> str:
    payload = {
        "provider_id": provider_id,
        "model_id": model_id,
        "kind": request.kind.value,
        "inputs": [[image.role, input_identity(image)] for image in request.inputs],
        "instruction_length": len(request.instruction),
        "instruction_hash": sha256_text(request.instruction),
        "subject": request.subject_description,
        "occasion": request.occasion,
    }
    return sha256_text(stable_json(payload))


def compute_identity_key(
    request: GenerationRequest, provider_id: str, model_id: str
) -> str | None:
    """Durable key, or None when some garment role has no stable id.

    The body image does not need an id. Without one it is keyed by a short
    hash of its path or content, and the subject description is always
    folded in, so a different person never shares an entry.
    """
    ids = request.entity_ids or {}
    roles = [role for role in request.roles if role != BODY_ROLE]
    if not roles or any(not ids.get(role) for role in roles):
        return None
    key = "__".join(f"{role}={ids[role]}" for role in sorted(roles))
    body = request.get_input(BODY_ROLE)
    if body is not None:
        key += f":body={ids.get(BODY_ROLE) or short_hash(input_identity(body))}"
    key += f":subject={short_hash(request.subject_description)}"
    return f"{request.kind.value}:{provider_id}:{model_id}:{key}"


def compute_cache_keys(
    request: GenerationRequest, provider_id: str, model_id: str
) -> CacheKeys:
    return CacheKeys(
        fingerprint=compute_fingerprint(request, provider_id, model_id),
        identity=compute_identity_key(request, provider_id, model_id),
        entity_ids=dict(request.entity_ids or {}),
        provider=provider_id,
        model=model_id,
    )
