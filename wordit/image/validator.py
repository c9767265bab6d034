"""Default image URL validator."""

import ipaddress
from urllib.parse import urlparse

from wordit.config.constants import DEFAULT_ALLOWED_SCHEMES
from wordit.services.protocols import ValidationResult
from wordit.utils.logging import get_logger

log = get_logger(__name__)

_LOCAL_HOSTNAMES = {"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback"}


def _host_matches(host: str, patterns: list[str]) -> bool:
    """Match a host against exact names and their subdomains."""
    for pattern in patterns:
        pattern = pattern.lower().lstrip(".")
        if host == pattern or host.endswith("." + pattern):
            return True
    return False


def _is_private_address(host: str) -> bool:
    if host in _LOCAL_HOSTNAMES or host.endswith(".localhost"):
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_multicast
        or address.is_unspecified
    )


class DefaultUrlValidator:
    """Scheme and host allow/deny-list validation.

    Host names are not resolved; private-network blocking applies to IP
    literals and localhost names only.
    """

    def __init__(
        self,
        allowed_schemes: list[str] | None = None,
        allowed_hosts: list[str] | None = None,
        blocked_hosts: list[str] | None = None,
        block_private_networks: bool = True,
    ) -> None:
        self.allowed_schemes = {s.lower() for s in (allowed_schemes or DEFAULT_ALLOWED_SCHEMES)}
        self.allowed_hosts = allowed_hosts
        self.blocked_hosts = blocked_hosts or []
        self.block_private_networks = block_private_networks

    def validate(self, url: str) -> ValidationResult:
        try:
            parsed = urlparse(url)
            host = (parsed.hostname or "").lower()
        except ValueError:
            return ValidationResult.rejected("malformed URL")

        scheme = parsed.scheme.lower()
        if scheme not in self.allowed_schemes:
            return ValidationResult.rejected(f"scheme not allowed: {scheme or 'none'}")
        if not host:
            return ValidationResult.rejected("missing host")
        if _host_matches(host, self.blocked_hosts):
            return ValidationResult.rejected(f"host blocked: {host}")
        if self.allowed_hosts is not None and not _host_matches(host, self.allowed_hosts):
            return ValidationResult.rejected(f"host not allowed: {host}")
        if self.block_private_networks and _is_private_address(host):
            return ValidationResult.rejected(f"private network address: {host}")
        return ValidationResult.accepted()
