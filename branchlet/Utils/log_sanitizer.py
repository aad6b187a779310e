"""
Log sanitizer utilities to keep GitHub credentials out of log output.

Every message passes through ``sanitize_string`` before reaching a sink (see
``logging_config``); structured payloads can be cleaned with ``sanitize_dict``.
"""

import re
from typing import Any, Dict, List, Pattern, Tuple

REDACTED = "***REDACTED***"

# Specific token formats first, generic key=value forms after.
SENSITIVE_PATTERNS: List[Tuple[Pattern[str], str]] = [
    (re.compile(r'github_pat_[A-Za-z0-9_]{20,}'), '***GITHUB_TOKEN***'),
    (re.compile(r'gh[pousr]_[A-Za-z0-9]{20,}'), '***GITHUB_TOKEN***'),
    (re.compile(r'(Bearer\s+)[A-Za-z0-9\-._~+/]+=*', re.IGNORECASE), r'\1' + REDACTED),
    (re.compile(r'(Authorization:\s*)(token\s+|Bearer\s+)?[^\s]+', re.IGNORECASE), r'\1\2' + REDACTED),
    (re.compile(r'(https?://)[^:/\s]+:[^@/\s]+@', re.IGNORECASE), r'\1***:***@'),
    (re.compile(r'["\']?(api_token|access_token|token|password|secret)["\']?\s*:\s*["\'][^"\']+["\']',
                re.IGNORECASE), r'"\1": "' + REDACTED + '"'),
    (re.compile(r'\b(api_token|access_token|token|password|secret)\s*=\s*["\']?[^\s"\',]+', re.IGNORECASE),
     r'\1=' + REDACTED),
    (re.compile(r'(GITHUB_API_TOKEN|GITHUB_TOKEN|GH_TOKEN)\s*=\s*[^\s]+'), r'\1=' + REDACTED),
]

# Fields to redact in dictionaries
SENSITIVE_FIELDS = {
    'token', 'api_token', 'access_token', 'auth_token', 'authorization',
    'password', 'secret', 'client_secret', 'credentials',
}


def sanitize_string(text: str) -> str:
    """
    Sanitize a string by removing sensitive data patterns.

    Args:
        text: The string to sanitize

    Returns:
        Sanitized string with credentials redacted
    """
    if not isinstance(text, str):
        text = str(text)
    for pattern, replacement in SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def sanitize_value(value: Any) -> Any:
    if isinstance(value, dict):
        return sanitize_dict(value)
    if isinstance(value, list):
        return [sanitize_value(item) for item in value]
    if isinstance(value, str):
        return sanitize_string(value)
    return value


def sanitize_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``data`` with sensitive keys redacted and string values scrubbed, recursively."""
    return {
        key: REDACTED if str(key).lower() in SENSITIVE_FIELDS else sanitize_value(value)
        for key, value in data.items()
    }
