"""Authentication utilities for the Brew-Me-In API."""

from app.auth.api_key import generate_api_key, get_key_prefix, hash_api_key

__all__ = [
    "generate_api_key",
    "hash_api_key",
    "get_key_prefix",
]
