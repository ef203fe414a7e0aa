"""
Redaction helpers for log output.

Request headers and GraphQL variables are passed through these helpers
before they are logged so bearer tokens, API keys and passwords never reach
the log stream.
"""

import re
from typing import Any, Dict, List, Optional, Set

# Keys that indicate sensitive data (case-insensitive, '-' treated as '_')
SENSITIVE_KEYS: Set[str] = {
    "password",
    "passwd",
    "secret",
    "token",
    "bearer",
    "api_key",
    "apikey",
    "authorization",
    "auth",
    "credential",
    "private_key",
    "client_secret",
    "cookie",
    "session",
    "encryption_key",
}

SENSITIVE_HEADERS: Set[str] = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "x-auth-token",
    "x-access-token",
    "www-authenticate",
}

# Values that look like credentials regardless of key name
SENSITIVE_PATTERNS: List[re.Pattern] = [
    re.compile(r"^Bearer\s+[A-Za-z0-9\-_\.]+", re.IGNORECASE),
    re.compile(r"^Basic\s+[A-Za-z0-9+/=]+", re.IGNORECASE),
    re.compile(r"^eyJ[A-Za-z0-9\-_]+\.eyJ[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+$"),
    re.compile(r"-----BEGIN (RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----"),
]

REDACTED = "[REDACTED]"


def _is_sensitive_key(key: Any) -> bool:
    if not isinstance(key, str):
        return False
    key_lower = key.lower().replace("-", "_")
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)


def _is_sensitive_value(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return any(pattern.search(value) for pattern in SENSITIVE_PATTERNS)


def sanitize_sensitive_data(data: Any, redaction: str = REDACTED, max_depth: int = 20) -> Any:
    """
    Return a redacted copy of data.

    Example:
        >>> sanitize_sensitive_data({"user": "admin", "password": "secret123"})
        {'user': 'admin', 'password': '[REDACTED]'}
    """
    if max_depth <= 0:
        return data
    if isinstance(data, dict):
        return {
            key: redaction if _is_sensitive_key(key) else sanitize_sensitive_data(value, redaction, max_depth - 1)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [sanitize_sensitive_data(item, redaction, max_depth - 1) for item in data]
    if _is_sensitive_value(data):
        return redaction
    return data


def sanitize_headers(headers: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Redact sensitive headers for logging. Multi-valued headers keep their
    shape: a list value becomes a list of placeholders.
    """
    result = {}
    for key, value in (headers or {}).items():
        if key.lower() in SENSITIVE_HEADERS or _is_sensitive_key(key):
            result[key] = [REDACTED] * len(value) if isinstance(value, list) else REDACTED
        else:
            result[key] = value
    return result
