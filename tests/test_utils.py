"""Tests for parsing and validation helpers."""

import pytest

from kube_tunnel.common.utils import (
    is_valid_port,
    parse_bool,
    parse_port,
    parse_str,
    validate_port,
)


class TestPortValidation:
    """Test port range helpers."""

    @pytest.mark.parametrize("port", [1, 80, 9200, 65535])
    def test_valid_ports(self, port):
        assert is_valid_port(port)
        validate_port(port)

    @pytest.mark.parametrize("port", [0, -1, 65536, "9200", 9200.0, True, None])
    def test_invalid_ports(self, port):
        assert not is_valid_port(port)
        with pytest.raises(ValueError, match="Port must be between 1 and 65535"):
            validate_port(port)

    def test_validate_port_custom_name(self):
        with pytest.raises(ValueError, match="Remote port must be between"):
            validate_port(0, "Remote port")


class TestParsePort:
    """Test parse_port fallback rules."""

    def test_parses_plain_number(self):
        assert parse_port("9300", 9200) == 9300

    def test_strips_whitespace(self):
        assert parse_port(" 9300\n", 9200) == 9300

    @pytest.mark.parametrize("raw", [None, "", "abc", "92.5", "0", "-5", "70000"])
    def test_falls_back_to_default(self, raw):
        assert parse_port(raw, 9200) == 9200


class TestParseBool:
    """Test parse_bool accepted spellings."""

    @pytest.mark.parametrize("raw", ["true", "TRUE", "True", "1", "yes", "on", " true "])
    def test_truthy(self, raw):
        assert parse_bool(raw) is True

    @pytest.mark.parametrize("raw", ["false", "FALSE", "0", "no", "off"])
    def test_falsy(self, raw):
        assert parse_bool(raw, default=True) is False

    @pytest.mark.parametrize("raw", [None, "", "maybe", "2"])
    def test_unknown_uses_default(self, raw):
        assert parse_bool(raw) is False
        assert parse_bool(raw, default=True) is True


class TestParseStr:
    """Test parse_str."""

    def test_returns_stripped_value(self):
        assert parse_str("  monitoring ", "infra") == "monitoring"

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_blank_uses_default(self, raw):
        assert parse_str(raw, "infra") == "infra"
