"""URL validation with SSRF protection for content archival."""

import ipaddress
import re
import socket
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit

from linkradar.archiving.models import ErrorReason

ALLOWED_SCHEMES = ("http", "https")

# Blocked hostnames for SSRF protection (case-insensitive)
BLOCKED_HOSTNAMES = {
    "metadata.google.internal",
    "metadata",
}

# Whitespace, control characters and unescaped quotes or angle brackets
_ILLEGAL_URL_CHARS = re.compile(r"[\s\x00-\x1f\x7f<>\"]")

# Numeric hosts resolvers accept as IPv4 but ipaddress does not:
# decimal 2130706433, hex 0x7f000001, octal 0177.0.0.1, short form 127.1
_NUMERIC_HOST = re.compile(
    r"^(?:(?:0x[0-9a-f]+|\d+)\.){0,3}(?:0x[0-9a-f]+|\d+)\.?$", re.IGNORECASE
)

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address
Resolver = Callable[[str], list[str]]


class ValidationError(ValueError):
    """Raised when URL validation fails.

    Attributes:
        reason: ``ErrorReason.INVALID_URL`` or ``ErrorReason.BLOCKED``
        url: The rejected URL
        details: Context such as the hostname or rejected scheme
    """

    def __init__(
        self,
        message: str,
        reason: ErrorReason,
        url: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.url = url
        self.details = details or {}


def resolve_host(hostname: str) -> list[str]:
    """Resolve a hostname to every address it maps to.

    Raises:
        socket.gaierror: If resolution fails
    """
    return [info[4][0] for info in socket.getaddrinfo(hostname, None)]


def is_private_address(ip: IPAddress) -> bool:
    """Return True for addresses that must never be fetched.

    Covers RFC 1918, loopback, link-local, unique-local (fc00::/7), unspecified,
    multicast and reserved ranges. IPv4-mapped IPv6 addresses are unwrapped first.
    """
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


class UrlValidator:
    """Validates URLs and prevents SSRF attacks.

    Used for the submitted URL and again for every redirect target so a redirect
    chain cannot pivot from a public host into a private network.

    Args:
        resolver: Hostname resolver returning address strings. Defaults to
            ``socket.getaddrinfo``.
    """

    def __init__(self, resolver: Resolver | None = None) -> None:
        self._resolver = resolver or resolve_host

    def validate(self, url: str) -> str:
        """Validate URL and check for SSRF risks.

        Args:
            url: URL to validate

        Returns:
            The URL unchanged (query, fragment and host case preserved)

        Raises:
            ValidationError: If URL is invalid or resolves to a private address
        """
        hostname = self._parse_hostname(url)
        self._public_addresses(url, hostname)
        return url

    def connect_address(self, hostname: str) -> str:
        """Resolve ``hostname`` again at connect time and return a public address.

        The HTTP connection is opened to the returned address, so a host whose
        DNS answer changes after ``validate`` still cannot reach a private network.

        Raises:
            ValidationError: If the host now resolves to a private address
        """
        return str(self._public_addresses(hostname, hostname)[0])

    def _public_addresses(self, url: str, hostname: str) -> list[IPAddress]:
        try:
            literal_ip: IPAddress | None = ipaddress.ip_address(hostname)
        except ValueError:
            literal_ip = None
            self._check_hostname(url, hostname)

        if literal_ip is not None:
            addresses = [literal_ip]
        else:
            addresses = self._resolve(url, hostname)

        for ip in addresses:
            if is_private_address(ip):
                raise ValidationError(
                    "URL resolves to private IP address (SSRF protection)",
                    ErrorReason.BLOCKED,
                    url,
                    {
                        "hostname": hostname,
                        "resolved_ip": str(ip),
                        "validation_reason": "private_ip",
                    },
                )
        return addresses

    def _parse_hostname(self, url: str) -> str:
        if not isinstance(url, str) or not url.strip():
            raise ValidationError("Invalid URL format", ErrorReason.INVALID_URL, str(url))

        try:
            parsed = urlsplit(url)
        except ValueError as e:
            raise ValidationError(
                f"Malformed URL: {e}", ErrorReason.INVALID_URL, url
            ) from e

        # Scheme first, so javascript: and data: URLs report the scheme
        scheme = parsed.scheme.lower()
        if scheme not in ALLOWED_SCHEMES:
            raise ValidationError(
                "URL scheme must be http or https",
                ErrorReason.INVALID_URL,
                url,
                {"scheme": parsed.scheme, "allowed_schemes": list(ALLOWED_SCHEMES)},
            )

        if _ILLEGAL_URL_CHARS.search(url):
            raise ValidationError(
                "Malformed URL: illegal characters", ErrorReason.INVALID_URL, url
            )

        try:
            # Accessing port validates it
            parsed.port
        except ValueError as e:
            raise ValidationError(
                f"Malformed URL: {e}", ErrorReason.INVALID_URL, url
            ) from e

        hostname = parsed.hostname
        if not hostname:
            raise ValidationError("Invalid URL format", ErrorReason.INVALID_URL, url)

        return hostname

    def _check_hostname(self, url: str, hostname: str) -> None:
        if hostname.lower().rstrip(".") in BLOCKED_HOSTNAMES:
            raise ValidationError(
                "Blocked hostname (SSRF protection)",
                ErrorReason.BLOCKED,
                url,
                {"hostname": hostname, "validation_reason": "blocked_hostname"},
            )

        if _NUMERIC_HOST.match(hostname):
            raise ValidationError(
                "IP address in alternate notation not allowed (SSRF protection)",
                ErrorReason.BLOCKED,
                url,
                {"hostname": hostname, "validation_reason": "alternate_ip_notation"},
            )

    def _resolve(self, url: str, hostname: str) -> list[IPAddress]:
        try:
            raw_addresses = self._resolver(hostname)
        except (socket.gaierror, UnicodeError, OSError) as e:
            raise ValidationError(
                f"DNS resolution failed: {e}",
                ErrorReason.INVALID_URL,
                url,
                {"hostname": hostname},
            ) from e

        addresses: list[IPAddress] = []
        for raw in raw_addresses:
            # Strip IPv6 zone identifiers such as fe80::1%eth0
            addresses.append(ipaddress.ip_address(raw.split("%", 1)[0]))

        if not addresses:
            raise ValidationError(
                "DNS resolution failed: no addresses returned",
                ErrorReason.INVALID_URL,
                url,
                {"hostname": hostname},
            )
        return addresses
