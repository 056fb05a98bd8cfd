"""
Unit tests for the Result type
"""
import pytest

from stemvault.core.result import Result


@pytest.mark.unit
class TestResult:
    """Test ok/err construction and unwrapping"""

    def test_ok(self):
        result = Result.ok(41)

        assert result.is_ok()
        assert result.unwrap() == 41
        assert result.map(lambda v: v + 1).unwrap() == 42

    def test_err_carries_code(self):
        result = Result.err("bucket offline", code="StorageUnavailable")

        assert result.is_err()
        assert result.code == "StorageUnavailable"
        assert result.unwrap_or("fallback") == "fallback"
        with pytest.raises(ValueError):
            result.unwrap()

    def test_map_captures_exceptions(self):
        result = Result.ok("not a number").map(int)

        assert result.is_err()
        assert "invalid literal" in result.error
