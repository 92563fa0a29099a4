"""Source URL validation."""

from collections.abc import Iterable
from urllib.parse import urlsplit

from ..config import settings

_SCHEMES = ("http", "https")


def is_valid_url(value: object, allowed_hosts: Iterable[str] | None = None) -> bool:
    """Check that ``value`` is an absolute http(s) URL on an allowed host.

    Never raises: anything that does not parse is simply rejected.
    """
    if not isinstance(value, str) or not value.strip():
        return False

    if allowed_hosts is None:
        allowed_hosts = settings.allowed_hosts

    try:
        parsed = urlsplit(value.strip())
        host = parsed.hostname
        # Out-of-range or non-numeric ports only raise on access.
        parsed.port
    except ValueError:
        return False

    if parsed.scheme.lower() not in _SCHEMES or not host:
        return False

    host = host.lower()
    return any(domain.lower() in host for domain in allowed_hosts if domain)
