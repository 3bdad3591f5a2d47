"""
Contact field validation and normalization.

Validation mirrors what the chat layer accepts from participants; the
normalized forms are what uniqueness is checked against.
"""

import re
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import base58

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DISCORD_ID_PATTERN = re.compile(r"^\d{5,25}$")

SOCIAL_PROFILE_DOMAINS = {
    "x_profile_url": ("x.com", "twitter.com"),
    "instagram_profile_url": ("instagram.com",),
}


class ContactValidator:
    """Validators for participant contact details."""

    @staticmethod
    def validate_email(email: str) -> bool:
        return bool(email) and bool(EMAIL_PATTERN.match(email.strip()))

    @staticmethod
    def validate_evm_address(address: str) -> bool:
        """Validate EVM (Ethereum) address format."""
        if not address:
            return False
        return bool(re.match(r'^0x[0-9a-fA-F]{40}$', address.strip()))

    @staticmethod
    def validate_solana_address(address: str) -> bool:
        """Solana addresses are base58-encoded 32 byte public keys."""
        if not address:
            return False
        try:
            return len(base58.b58decode(address.strip())) == 32
        except ValueError:
            return False

    @staticmethod
    def validate_discord_user_id(user_id: str) -> bool:
        return bool(user_id) and bool(DISCORD_ID_PATTERN.match(user_id.strip()))

    @staticmethod
    def validate_social_profile(url: str, field: str) -> bool:
        """Profile links must be http(s) URLs on the platform's domain with a handle path."""
        allowed = SOCIAL_PROFILE_DOMAINS.get(field)
        if not allowed or not url:
            return False
        parts = urlsplit(url.strip())
        if parts.scheme not in ("http", "https"):
            return False
        host = (parts.hostname or "").lower()
        if host.startswith("www."):
            host = host[4:]
        if host not in allowed:
            return False
        return len(parts.path.rstrip("/")) > 1


def canonical_social_profile(url: str) -> str:
    """Form a profile link is stored in: https, no www, query, fragment or trailing slash"""
    parts = urlsplit(url.strip())
    host = (parts.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return urlunsplit(("https", host, parts.path.rstrip("/"), "", ""))


CONTACT_VALIDATORS = {
    "email": ContactValidator.validate_email,
    "wallet": ContactValidator.validate_evm_address,
    "solana_wallet": ContactValidator.validate_solana_address,
    "discord_user_id": ContactValidator.validate_discord_user_id,
    "x_profile_url": lambda value: ContactValidator.validate_social_profile(value, "x_profile_url"),
    "instagram_profile_url": lambda value: ContactValidator.validate_social_profile(value, "instagram_profile_url"),
}


def validate_contact_value(field: str, value: str) -> bool:
    validator = CONTACT_VALIDATORS.get(field)
    return bool(validator and validator(value))


def stored_contact_value(field: str, value: str) -> str:
    """Value as written to the participant record"""
    if field in SOCIAL_PROFILE_DOMAINS:
        return canonical_social_profile(value)
    return value.strip()


def normalize_contact_value(field: str, value: Optional[str]) -> Optional[str]:
    """Comparison key used for uniqueness checks"""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if field in ("email", "wallet"):
        return value.lower()
    if field in SOCIAL_PROFILE_DOMAINS:
        return canonical_social_profile(value).lower()
    # base58 and numeric ids are case sensitive
    return value
