"""
Tests for version helpers — validation, patch increment, byte sizes.
"""

import math

import pytest

from deployconsole.core.services.versioning import (
    format_bytes,
    is_valid_version,
    next_patch_version,
)


class TestIsValidVersion:
    @pytest.mark.parametrize("value", ["0.0.1", "1.2.3", "10.20.30", " 1.0.0 ", "01.2.3"])
    def test_valid(self, value):
        assert is_valid_version(value)

    @pytest.mark.parametrize(
        "value",
        ["", "1.2", "1.2.3.4", "a.b.c", "1. 2.3", "v1.2.3", "1.2.x", "1..3", "1.2.3-rc1", "１.２.３", None],
    )
    def test_invalid(self, value):
        assert not is_valid_version(value)


class TestNextPatchVersion:
    def test_increments_patch(self):
        assert next_patch_version("1.2.3") == "1.2.4"

    def test_carries_no_overflow(self):
        assert next_patch_version("0.9.9") == "0.9.10"

    def test_trims(self):
        assert next_patch_version(" 2.0.0 ") == "2.0.1"

    def test_invalid_falls_back(self):
        assert next_patch_version("1.2") == "0.0.1"
        assert next_patch_version("") == "0.0.1"
        assert next_patch_version(None) == "0.0.1"


class TestFormatBytes:
    def test_bytes(self):
        assert format_bytes(0) == "0 B"
        assert format_bytes(512) == "512 B"
        assert format_bytes(1023) == "1023 B"

    def test_kib(self):
        assert format_bytes(1024) == "1.0 KiB"
        assert format_bytes(1536) == "1.5 KiB"

    def test_larger_units(self):
        assert format_bytes(5 * 1024 * 1024) == "5.0 MiB"
        assert format_bytes(3 * 1024 ** 3) == "3.0 GiB"
        assert format_bytes(2 * 1024 ** 4) == "2.0 TiB"

    def test_stays_in_tib(self):
        assert format_bytes(2048 * 1024 ** 4) == "2048.0 TiB"

    def test_bad_input(self):
        assert format_bytes(-1) == "-"
        assert format_bytes(math.inf) == "-"
        assert format_bytes(math.nan) == "-"
        assert format_bytes("lots") == "-"
