"""Tests for root domain normalization."""

import pytest

from rankdesk.utils.domains import is_http_url, normalize_domain


class TestNormalizeDomain:
    """Test suite for normalize_domain."""

    def test_url_variants_share_a_key(self):
        """Scheme, path, case and www. prefix do not change the key."""
        assert normalize_domain("https://Example.com/a") == "example.com"
        assert normalize_domain("http://www.example.com/b?q=1") == "example.com"
        assert normalize_domain("WWW.EXAMPLE.COM") == "example.com"
        assert normalize_domain("example.com") == "example.com"

    def test_port_is_dropped_from_urls(self):
        """Only the hostname of an absolute URL is kept."""
        assert normalize_domain("https://example.com:8080/x") == "example.com"

    def test_subdomains_are_kept(self):
        """Only the www. prefix is stripped."""
        assert normalize_domain("https://blog.example.com/post") == "blog.example.com"

    def test_empty_input(self):
        """Empty and missing input give an empty key."""
        assert normalize_domain("") == ""
        assert normalize_domain(None) == ""

    def test_unparsable_input_degrades(self):
        """Garbage is lower-cased and www.-stripped rather than rejected."""
        assert normalize_domain("  WWW.Not A Url  ") == "not a url"
        assert normalize_domain("http://[::1") == "http://[::1"

    @pytest.mark.parametrize("value", [
        "https://www.www.example.com",
        "www. a://b",
        "  https://WWW.Example.com/  ",
        "http://",
        "www.",
        "ftp://files.example.com/pub",
    ])
    def test_idempotent(self, value):
        """Normalizing twice changes nothing."""
        once = normalize_domain(value)
        assert normalize_domain(once) == once


class TestIsHttpUrl:
    """Test suite for is_http_url."""

    def test_accepts_absolute_http_urls(self):
        assert is_http_url("https://example.com/x")
        assert is_http_url("http://example.com")

    def test_rejects_other_values(self):
        assert not is_http_url("example.com")
        assert not is_http_url("ftp://example.com")
        assert not is_http_url("https://")
        assert not is_http_url("")
        assert not is_http_url(None)
