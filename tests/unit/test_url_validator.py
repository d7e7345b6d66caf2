"""Tests for linkradar.archiving.url_validator module."""

import ipaddress

import pytest

from linkradar.archiving.models import ErrorReason
from linkradar.archiving.url_validator import (
    UrlValidator,
    ValidationError,
    is_private_address,
)


def test_validate_returns_url_unchanged(validator: UrlValidator) -> None:
    """Verify query string, fragment and host case survive validation."""
    url = "https://Example.COM/path?q=1&b=two#section"
    assert validator.validate(url) == url


def test_validate_accepts_http_url(validator: UrlValidator) -> None:
    assert validator.validate("http://example.com/") == "http://example.com/"


def test_validate_accepts_host_with_v4_and_v6_public_addresses(
    validator: UrlValidator,
) -> None:
    validator.validate("https://cdn.example/img.png")


@pytest.mark.parametrize(
    "url",
    [
        "ftp://example.com/file",
        "file:///etc/passwd",
        "javascript:alert(1)",
        'javascript:alert("x")',
        "data:text/html,<script>alert(1)</script>",
        "data:text/html,hi",
    ],
)
def test_validate_rejects_non_http_scheme(validator: UrlValidator, url: str) -> None:
    """Verify validator rejects non-HTTP(S) schemes and names the allowed set."""
    with pytest.raises(ValidationError, match="URL scheme must be http or https") as exc_info:
        validator.validate(url)

    error = exc_info.value
    assert error.reason is ErrorReason.INVALID_URL
    assert error.details["allowed_schemes"] == ["http", "https"]
    assert error.details["scheme"] == url.split(":", 1)[0]


@pytest.mark.parametrize(
    "url",
    ["", "   ", "https://", "http://exa mple.com/", "https://example.com/<script>", "http://example.com:99999/"],
)
def test_validate_rejects_malformed_url(validator: UrlValidator, url: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        validator.validate(url)

    assert exc_info.value.reason is ErrorReason.INVALID_URL


def test_validate_rejects_unresolvable_host(validator: UrlValidator) -> None:
    """Verify DNS failures are invalid_url with the hostname attached."""
    with pytest.raises(ValidationError, match="DNS resolution failed") as exc_info:
        validator.validate("https://nonexistent.invalid/page")

    assert exc_info.value.reason is ErrorReason.INVALID_URL
    assert exc_info.value.details == {"hostname": "nonexistent.invalid"}


@pytest.mark.parametrize(
    "url",
    [
        "http://127.0.0.1/admin",
        "http://10.1.2.3/",
        "http://172.16.0.1/",
        "http://192.168.1.1/",
        "http://169.254.169.254/latest/meta-data",
        "http://[::1]/",
        "http://[fd12:3456::1]/",
        "http://0.0.0.0/",
    ],
)
def test_validate_blocks_private_ip_literals(validator: UrlValidator, url: str) -> None:
    """Verify validator rejects private IP addresses (SSRF protection)."""
    with pytest.raises(
        ValidationError, match="URL resolves to private IP address"
    ) as exc_info:
        validator.validate(url)

    error = exc_info.value
    assert error.reason is ErrorReason.BLOCKED
    assert error.details["validation_reason"] == "private_ip"


def test_validate_blocks_hostname_resolving_privately(validator: UrlValidator) -> None:
    with pytest.raises(ValidationError) as exc_info:
        validator.validate("https://internal.example/secret")

    error = exc_info.value
    assert error.reason is ErrorReason.BLOCKED
    assert error.details == {
        "hostname": "internal.example",
        "resolved_ip": "10.0.0.5",
        "validation_reason": "private_ip",
    }


def test_validate_blocks_when_any_resolved_address_is_private(
    validator: UrlValidator,
) -> None:
    """Verify one private record among public ones is enough to block."""
    with pytest.raises(ValidationError) as exc_info:
        validator.validate("https://sneaky.example/")

    assert exc_info.value.details["resolved_ip"] == "127.0.0.1"


def test_validate_blocks_ipv4_mapped_ipv6(validator: UrlValidator) -> None:
    with pytest.raises(ValidationError) as exc_info:
        validator.validate("https://mapped.example/")

    assert exc_info.value.reason is ErrorReason.BLOCKED


def test_validate_strips_ipv6_zone_id(validator: UrlValidator) -> None:
    with pytest.raises(ValidationError) as exc_info:
        validator.validate("https://v6local.example/")

    assert exc_info.value.details["resolved_ip"] == "fe80::1"


@pytest.mark.parametrize(
    "url",
    ["http://2130706433/", "http://0x7f000001/", "http://0177.0.0.1/", "http://127.1/"],
)
def test_validate_blocks_alternate_ip_notation(validator: UrlValidator, url: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        validator.validate(url)

    assert exc_info.value.reason is ErrorReason.BLOCKED
    assert exc_info.value.details["validation_reason"] == "alternate_ip_notation"


def test_validate_blocks_cloud_metadata_hostname(validator: UrlValidator) -> None:
    with pytest.raises(ValidationError) as exc_info:
        validator.validate("http://metadata.google.internal/computeMetadata/v1/")

    assert exc_info.value.details["validation_reason"] == "blocked_hostname"


def test_validate_does_not_resolve_ip_literals(fake_resolver) -> None:
    """Verify literal public IPs are checked without a DNS lookup."""
    calls: list[str] = []

    def resolver(hostname: str) -> list[str]:
        calls.append(hostname)
        return fake_resolver(hostname)

    UrlValidator(resolver=resolver).validate("https://93.184.216.34/")

    assert calls == []


@pytest.mark.parametrize(
    ("address", "expected"),
    [
        ("8.8.8.8", False),
        ("2606:4700::1111", False),
        ("127.0.0.1", True),
        ("::1", True),
        ("fc00::1", True),
        ("224.0.0.1", True),
        ("::ffff:10.0.0.1", True),
    ],
)
def test_is_private_address(address: str, expected: bool) -> None:
    assert is_private_address(ipaddress.ip_address(address)) is expected


def test_connect_address_returns_public_address(validator: UrlValidator) -> None:
    assert validator.connect_address("example.com") == "93.184.216.34"
    assert validator.connect_address("151.101.1.69") == "151.101.1.69"


def test_connect_address_blocks_private_resolution(validator: UrlValidator) -> None:
    with pytest.raises(ValidationError) as exc_info:
        validator.connect_address("sneaky.example")

    assert exc_info.value.reason is ErrorReason.BLOCKED
    assert exc_info.value.details["resolved_ip"] == "127.0.0.1"
