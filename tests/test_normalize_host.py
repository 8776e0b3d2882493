"""Tests for host key normalization and the reserved-key guard."""

import pytest

from tokenkeep.errors import ValidationError
from tokenkeep.types import RESERVED_HOST_KEYS, is_safe_host_key, normalize_host, require_host


# ---------------------------------------------------------------------------
# Unit tests: normalize_host
# ---------------------------------------------------------------------------


class TestNormalizeHostPlain:
    def test_plain_hostname(self):
        assert normalize_host("example.com") == "example.com"

    def test_trims_whitespace(self):
        assert normalize_host("  example.com \n") == "example.com"

    def test_plain_kept_verbatim(self):
        """Without a scheme the input is not parsed or lowercased."""
        assert normalize_host("Example.COM") == "Example.COM"

    def test_plain_with_path_kept_verbatim(self):
        assert normalize_host("example.com/login") == "example.com/login"

    def test_empty(self):
        assert normalize_host("") == ""

    def test_whitespace_only(self):
        assert normalize_host("   ") == ""

    def test_none(self):
        assert normalize_host(None) == ""

    def test_non_string(self):
        assert normalize_host(42) == ""
        assert normalize_host(["example.com"]) == ""


class TestNormalizeHostUrl:
    def test_https_url(self):
        assert normalize_host("https://example.com/path?q=1") == "example.com"

    def test_host_lowercased(self):
        assert normalize_host("HTTPS://Example.COM/") == "example.com"

    def test_port_dropped(self):
        assert normalize_host("http://example.com:8080/") == "example.com"

    def test_credentials_dropped(self):
        assert normalize_host("https://user:pw@example.com/") == "example.com"

    def test_subdomain(self):
        assert normalize_host("https://app.staging.example.com") == "app.staging.example.com"

    def test_other_scheme(self):
        assert normalize_host("ftp://files.example.org/pub") == "files.example.org"

    def test_ipv6_keeps_brackets(self):
        assert normalize_host("http://[::1]:3000/") == "[::1]"

    def test_url_with_surrounding_space(self):
        assert normalize_host("  https://example.com  ") == "example.com"

    def test_no_host(self):
        assert normalize_host("http://") == ""

    def test_bad_port(self):
        assert normalize_host("http://example.com:99999/") == ""

    def test_bad_ipv6(self):
        assert normalize_host("http://[::1/") == ""


# ---------------------------------------------------------------------------
# Reserved keys
# ---------------------------------------------------------------------------


class TestReservedKeys:
    @pytest.mark.parametrize("key", sorted(RESERVED_HOST_KEYS))
    def test_reserved_unsafe(self, key):
        assert not is_safe_host_key(key)

    def test_normal_host_safe(self):
        assert is_safe_host_key("example.com")

    def test_lookalike_safe(self):
        assert is_safe_host_key("__proto__.example.com")
        assert is_safe_host_key("Constructor")

    def test_normalize_does_not_reject_reserved(self):
        """Normalization and the safety check are separate steps."""
        assert normalize_host("__proto__") == "__proto__"
        assert not is_safe_host_key(normalize_host("__proto__"))


class TestRequireHost:
    def test_returns_normalized(self):
        assert require_host("https://Example.com/x") == "example.com"

    def test_empty_raises(self):
        with pytest.raises(ValidationError):
            require_host("  ")

    def test_unparseable_url_raises(self):
        with pytest.raises(ValidationError):
            require_host("http://")

    @pytest.mark.parametrize("key", ["__proto__", "prototype", "constructor", " constructor "])
    def test_reserved_raises(self, key):
        with pytest.raises(ValidationError, match="Reserved"):
            require_host(key)
