"""
Tests for Security Utilities
=============================

Tests for:
- mask_api_key for log-safe key prefixes
- mask_sensitive for various input lengths
- sanitize_for_logging on flat and nested dictionaries
"""

from loneless.utils.security import mask_api_key, mask_sensitive, sanitize_for_logging


class TestMaskApiKey:
    def test_prefix_kept(self):
        assert mask_api_key("AIzaSyD-1234567890") == "AIzaSyD-..."

    def test_short_key_fully_masked(self):
        assert mask_api_key("short") == "*****"

    def test_exact_length_fully_masked(self):
        assert mask_api_key("12345678") == "********"

    def test_empty(self):
        assert mask_api_key("") == ""

    def test_custom_visible_chars(self):
        assert mask_api_key("sk-abcdefghijkl", visible_chars=3) == "sk-..."


class TestMaskSensitive:
    def test_basic_mask(self):
        assert mask_sensitive("password123") == "pas********"

    def test_short_value(self):
        assert mask_sensitive("ab") == "**"

    def test_empty(self):
        assert mask_sensitive("") == ""

    def test_custom_visible(self):
        result = mask_sensitive("secretvalue", visible_chars=5)
        assert result.startswith("secre")
        assert "tvalue" not in result


class TestSanitizeForLogging:
    def test_credentials_masked(self):
        result = sanitize_for_logging(
            {
                "api_key": "sk-123456789",
                "token": "abcdefgh",
                "model": "gpt-4o-mini",
            }
        )

        assert result["api_key"] == "sk-********"
        assert result["token"] == "abc********"
        assert result["model"] == "gpt-4o-mini"

    def test_key_field_masked(self):
        assert sanitize_for_logging({"key": "AIzaSyD-123"})["key"] == "AIz********"

    def test_non_string_secret(self):
        assert sanitize_for_logging({"password": 1234})["password"] == "********"

    def test_nested(self):
        result = sanitize_for_logging({"provider": {"apiKey": "sk-123456789", "base_url": "https://x"}})

        assert result["provider"] == {"apiKey": "sk-********", "base_url": "https://x"}

    def test_original_unchanged(self):
        data = {"api_key": "sk-123456789"}
        sanitize_for_logging(data)
        assert data["api_key"] == "sk-123456789"
