"""Tests for metadata provider client exceptions.

Tests exception hierarchy, error messages and attributes.
"""

import pytest

from md_client.errors import (
    MDAPIError,
    MDConfigError,
    MDError,
    MDNetworkError,
    MDNotFoundError,
    MDRateLimitError,
)

pytestmark = pytest.mark.unit


class TestMDAPIError:
    """Tests for MDAPIError."""

    def test_inherits_from_md_error(self):
        assert issubclass(MDAPIError, MDError)

    def test_constructor_with_all_args(self):
        error = MDAPIError(status_code=502, message="Bad gateway", endpoint="/manga")

        assert error.status_code == 502
        assert error.message == "Bad gateway"
        assert error.endpoint == "/manga"

    def test_string_representation(self):
        error_str = str(MDAPIError(500, "Server error", "/manga"))

        assert "500" in error_str
        assert "/manga" in error_str
        assert "Server error" in error_str

    @pytest.mark.parametrize("code,expected", [(400, False), (499, False), (500, True), (503, True)])
    def test_is_server_error(self, code, expected):
        assert MDAPIError(code, "x").is_server_error is expected


class TestMDRateLimitError:
    """Tests for MDRateLimitError."""

    def test_status_code_is_429(self):
        error = MDRateLimitError()

        assert error.status_code == 429
        assert error.retry_after is None
        assert "Rate limit exceeded" in str(error)

    def test_with_retry_after(self):
        error = MDRateLimitError(retry_after=30.0, endpoint="/manga")

        assert error.retry_after == 30.0
        assert "30" in str(error)
        assert error.endpoint == "/manga"

    def test_catchable_as_api_error(self):
        with pytest.raises(MDAPIError):
            raise MDRateLimitError(retry_after=1)


class TestMDNotFoundError:
    """Tests for MDNotFoundError."""

    def test_status_code_is_404(self):
        error = MDNotFoundError(resource_id="a1b2")

        assert error.status_code == 404
        assert error.resource_type == "manga"
        assert "a1b2" in str(error)
        assert "Manga" in str(error)


class TestOtherErrors:
    """Tests for network and config errors."""

    def test_network_error_not_api_error(self):
        error = MDNetworkError("connection refused", endpoint="/manga")

        assert isinstance(error, MDError)
        assert not isinstance(error, MDAPIError)
        assert "connection refused" in str(error)

    def test_config_error_message_preserved(self):
        assert str(MDConfigError("bad rate")) == "bad rate"
