"""Unit tests for query limits and timeouts."""

from cardsearch_core.domain.exceptions import SearchUnavailableError
from cardsearch_core.domain.query_limits import (
    DEFAULT_MAX_RESULTS,
    DEFAULT_QUERY_TIMEOUT,
    QueryLimits,
    QueryTimeoutError,
)


class TestQueryLimits:
    """Tests for QueryLimits configuration."""

    def test_create_default_limits(self):
        """Test creating query limits with defaults."""
        limits = QueryLimits()

        assert limits.timeout_ms == DEFAULT_QUERY_TIMEOUT
        assert limits.max_results == DEFAULT_MAX_RESULTS

    def test_timeout_clamped_to_max(self):
        """Test that timeout is clamped to maximum."""
        assert QueryLimits(timeout_ms=120000).timeout_ms == 30000

    def test_timeout_has_minimum(self):
        """Test that timeout has a minimum value."""
        assert QueryLimits(timeout_ms=1).timeout_ms == 100

    def test_max_results_bounds(self):
        """Test that max_results is kept within bounds."""
        assert QueryLimits(max_results=0).max_results == 1
        assert QueryLimits(max_results=50000).max_results == 1000

    def test_clamp_limit(self):
        limits = QueryLimits(max_results=25)

        assert limits.clamp_limit(10) == 10
        assert limits.clamp_limit(100) == 25

    def test_from_settings(self, test_settings):
        """Test creating limits from application settings."""
        limits = QueryLimits.from_settings(test_settings)

        assert limits.timeout_ms == 2000
        assert limits.max_results == 100

    def test_to_dict(self):
        assert QueryLimits(timeout_ms=5000, max_results=50).to_dict() == {
            "timeout_ms": 5000,
            "max_results": 50,
        }


class TestQueryTimeoutError:
    """Tests for QueryTimeoutError exception."""

    def test_error_attributes(self):
        error = QueryTimeoutError(query_type="search", timeout_ms=5000)

        assert error.query_type == "search"
        assert error.timeout_ms == 5000
        assert "5000" in str(error)

    def test_is_retryable_unavailable_error(self):
        error = QueryTimeoutError(query_type="search", timeout_ms=5000)

        assert isinstance(error, SearchUnavailableError)
        assert error.retryable is True

    def test_to_dict(self):
        result = QueryTimeoutError(query_type="headline", timeout_ms=3000).to_dict()

        assert result["error_type"] == "query_timeout"
        assert result["query_type"] == "headline"
        assert result["timeout_ms"] == 3000
