"""Tests for ResultFailures convenience factories."""

from railway import ErrorCode
from railway.result_failures import ResultFailures


class TestConvenienceFactories:
    def test_invalid_input(self):
        result = ResultFailures.invalid_input("not base64")
        assert result.error().code == ErrorCode.VALIDATION_ERROR
        assert result.error().message == "not base64"

    def test_not_found_names_resource(self):
        result = ResultFailures.not_found("TLS certificate", "c0ffee")
        assert result.error().code == ErrorCode.NOT_FOUND
        assert result.error().message == "Failed to find TLS certificate 'c0ffee'"

    def test_permission_denied(self):
        result = ResultFailures.permission_denied("modify_tls_certificate")
        assert result.error().code == ErrorCode.AUTHORIZATION_ERROR
        assert "modify_tls_certificate" in result.error().message

    def test_already_exists(self):
        result = ResultFailures.already_exists("TLS certificate", "web")
        assert result.error().code == ErrorCode.ALREADY_EXISTS
        assert "'web'" in result.error().message
