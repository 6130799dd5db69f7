# pipegap/core/integrity_layer.py
# Version: 1.0.0
# Integrity / hash-chain layer.
#
# Canonical JSON encoding and SHA-256 digests used to
#   - fingerprint Gap Reports (two runs over an unchanged topology must
#     produce byte-identical reports, hence identical digests), and
#   - chain the phase events recorded by the EventLogger.
#
# DETERMINISM GUARANTEES:
#   DET-01  No stochastic operations. No uuid, no os.urandom, no random.
#   DET-02  All inputs passed explicitly. No module-level mutable state.
#   DET-03  Pure functions only. No IO.
#   DET-04  Hashing is SHA-256 over canonical UTF-8 bytes
#           (sorted keys, fixed separators, ASCII escapes).
#
# Timestamps are never part of a hash preimage, so identical logical
# content yields identical hashes regardless of wall-clock time.

from __future__ import annotations

import json
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, Iterable, List


GENESIS_HASH: str = "0" * 64


def canonical_json(data: Any) -> str:
    """
    Serialize data to its canonical JSON string.

    Keys sorted, separators without whitespace, ASCII-only output.
    Raises TypeError for values JSON cannot represent.
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def sha256_hex(text: str) -> str:
    """Lowercase 64-character SHA-256 hex digest of a UTF-8 string."""
    return sha256(text.encode("utf-8")).hexdigest()


def digest(data: Any) -> str:
    """SHA-256 over the canonical JSON encoding of data."""
    return sha256_hex(canonical_json(data))


@dataclass(frozen=True)
class ChainLink:
    """
    One link of an append-only hash chain.

    current_hash = SHA-256(previous_hash || link_type || canonical_json(data))
    """
    link_type:     str
    data_json:     str
    previous_hash: str
    current_hash:  str


class IntegrityLayer:
    """
    Builds and verifies hash chains.

    Holds no chain state itself: callers keep the links and pass the
    previous hash explicitly, so one instance can serve many chains.
    """

    def link(self, link_type: str, data: Any, previous_hash: str = GENESIS_HASH) -> ChainLink:
        data_json = canonical_json(data)
        current = sha256_hex(previous_hash + link_type + data_json)
        return ChainLink(
            link_type=link_type,
            data_json=data_json,
            previous_hash=previous_hash,
            current_hash=current,
        )

    def verify_chain(self, links: Iterable[ChainLink]) -> List[str]:
        """
        Recompute every link. Returns a list of error strings; empty means
        the chain is intact.
        """
        errors: List[str] = []
        expected_previous = GENESIS_HASH
        for index, link in enumerate(links):
            if link.previous_hash != expected_previous:
                errors.append(
                    "link {}: previous_hash does not match preceding link".format(index)
                )
            recomputed = sha256_hex(link.previous_hash + link.link_type + link.data_json)
            if recomputed != link.current_hash:
                errors.append("link {}: current_hash mismatch".format(index))
            expected_previous = link.current_hash
        return errors


__all__ = [
    "GENESIS_HASH",
    "canonical_json",
    "sha256_hex",
    "digest",
    "ChainLink",
    "IntegrityLayer",
]
