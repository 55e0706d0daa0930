"""
Cache key derivation for natural-language queries.

A key is composed from the data-source id, the data source's content
fingerprint and a hash of the normalised prompt::

    query:{data_source_id}:{fingerprint}:{prompt_hash}

"Show Revenue!" and "show   revenue" normalise to the same text and so
share a key.  Re-uploading a data source mints a new fingerprint, which
leaves every older entry for that source unreachable until its TTL expires.

``:`` and ``%`` inside the id or fingerprint are percent-escaped, so a
component can never spill into its neighbour (``"a:b" + "c"`` and
``"a" + "b:c"`` give different keys).  Ids without those characters
appear verbatim.
"""
from __future__ import annotations

import hashlib
import re
import uuid

KEY_PREFIX = "query"

_WHITESPACE_RE = re.compile(r"\s+")
_PUNCTUATION_RE = re.compile(r"[.,!?]")

_HASH_CHARS = 16


def normalize_prompt(prompt: str) -> str:
    """Lower-case, drop ``. , ! ?``, collapse whitespace and trim."""
    normalized = prompt.lower()
    # Punctuation goes first so "revenue , by" collapses like "revenue, by".
    normalized = _PUNCTUATION_RE.sub("", normalized)
    normalized = _WHITESPACE_RE.sub(" ", normalized)
    return normalized.strip()


def prompt_hash(normalized: str) -> str:
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:_HASH_CHARS]


def _escape(component: str) -> str:
    return component.replace("%", "%25").replace(":", "%3A")


def derive_key(data_source_id: str, prompt: str, fingerprint: str | None) -> str:
    """Deterministic cache key for a prompt against one version of a data source."""
    digest = prompt_hash(normalize_prompt(prompt))
    return f"{KEY_PREFIX}:{_escape(data_source_id)}:{_escape(fingerprint or '')}:{digest}"


def new_fingerprint() -> str:
    """Mint a fingerprint for freshly replaced data-source content."""
    return str(uuid.uuid4())
