"""Operator error types and scrubbing of identifiers from error text."""

import re


class ValidationError(ValueError):
    """A Bucket or Provider spec is invalid. Never retried."""


class BucketNotEmptyError(Exception):
    """A bucket still holds objects and force-destroy is not enabled."""

    def __init__(self, bucket_name: str, object_count: int) -> None:
        self.bucket_name = bucket_name
        self.object_count = object_count
        super().__init__(
            f"Error trying to delete bucket {bucket_name} containing {object_count} "
            "object version(s) without forceDestroy set to true"
        )


REDACTED = "[REDACTED]"

# Group 1 of each pattern is the identifier that gets replaced
_IDENTIFIER_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"project[_\s]?number[:\s]+(\d+)",
        r"projects/(\d+)",
        r"serviceAccount:([a-zA-Z0-9\-_\.@]+)",
        r"([a-zA-Z0-9\-_]+@[a-zA-Z0-9\-]+\.iam\.gserviceaccount\.com)",
        r"cryptoKeys/([a-zA-Z0-9\-_]+)",
        r"access[_\s]?token[:\s]+([A-Za-z0-9\-_\.]+)",
    )
]

# Key material whose value follows the field name
SECRET_FIELDS = ("private_key_id", "private_key", "client_secret", "refresh_token", "password", "credentials")
_FIELD_PATTERN = re.compile(
    rf"\b({'|'.join(SECRET_FIELDS)})[\"']?[:=\s]+[\"']?[^\s,;\)\"']+",
    re.IGNORECASE,
)


def _redact_group(match: re.Match) -> str:
    start, end = match.span(1)
    text = match.group(0)
    offset = match.start(0)
    return text[: start - offset] + REDACTED + text[end - offset :]


def sanitize_error_message(message: str) -> str:
    """Redact project numbers, service accounts, key names and key material."""
    for pattern in _IDENTIFIER_PATTERNS:
        message = pattern.sub(_redact_group, message)
    return _FIELD_PATTERN.sub(lambda m: f"{m.group(1)}: {REDACTED}", message)


def sanitize_exception(error: Exception) -> str:
    return sanitize_error_message(str(error))
