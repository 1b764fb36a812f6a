"""Security utilities for API key generation and hashing."""

import secrets
import hashlib


def generate_api_key() -> str:
    """
    Generate a new API key with the format: naafe_sk_{hex}.

    Returns:
        str: API key in format naafe_sk_<64 hex characters>
    """
    random_hex = secrets.token_hex(32)  # 32 bytes = 64 hex characters
    return f"naafe_sk_{random_hex}"


def hash_api_key(api_key: str) -> str:
    """
    Hash an API key using SHA-256.

    Args:
        api_key: The plaintext API key

    Returns:
        str: SHA-256 hash of the API key as hex string
    """
    return hashlib.sha256(api_key.encode()).hexdigest()
