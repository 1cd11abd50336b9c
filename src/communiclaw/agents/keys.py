"""Agent API key generation and verification using argon2id."""

from __future__ import annotations

import secrets

import argon2

KEY_PREFIX = "ccl_"
LOOKUP_PREFIX_LENGTH = 14

_hasher = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=65536,
    parallelism=1,
    hash_len=32,
    salt_len=16,
    type=argon2.Type.ID,
)


def generate_api_key() -> tuple[str, str, str]:
    """
    Generate a new agent API key.

    Returns:
        (full_key, lookup_prefix, argon2_hash).
        The full key is shown to the owner once and never stored.
    """
    full_key = f"{KEY_PREFIX}{secrets.token_hex(32)}"
    return full_key, lookup_prefix(full_key), _hasher.hash(full_key)


def lookup_prefix(full_key: str) -> str:
    """Indexed prefix used to find the candidate hash ("ccl_a1b2c3d4e5")."""
    return full_key[:LOOKUP_PREFIX_LENGTH]


def verify_api_key(full_key: str, stored_hash: str) -> bool:
    """Verify an API key against its stored argon2 hash."""
    try:
        return _hasher.verify(stored_hash, full_key)
    except argon2.exceptions.VerifyMismatchError:
        return False
    except argon2.exceptions.InvalidHashError:
        return False
