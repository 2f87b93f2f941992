"""
Tests for the vault exception hierarchy.
"""

from core.exceptions import (
    ErrorClassification,
    InvalidConfigError,
    NotFound,
    ParseError,
    PayloadMissingError,
    Severity,
    StorageReadFailed,
    ValidationError,
)


class TestExceptions:

    def test_client_errors(self):
        assert ValidationError("file is empty").is_client_error
        assert ParseError("bad", row=3).is_client_error
        assert NotFound("abc").is_client_error
        assert not PayloadMissingError("abc", "/x").is_client_error

    def test_not_found_message(self):
        error = NotFound("abc")
        assert error.message == "Stored file abc not found"
        assert error.record_id == "abc"

    def test_payload_missing_is_read_failure(self):
        error = PayloadMissingError("abc", "/vault/x.mp3")
        assert isinstance(error, StorageReadFailed)
        assert error.classification == ErrorClassification.NON_RECOVERABLE

    def test_to_dict(self):
        data = ParseError("bad cell", filename="a.csv", row=2, field="overall_sentiment_score").to_dict()

        assert data["type"] == "ParseError"
        assert data["severity"] == Severity.LOW.value
        assert data["context"] == {"filename": "a.csv", "row": 2, "field": "overall_sentiment_score"}

    def test_invalid_config_omits_value(self):
        error = InvalidConfigError("VAULT_ENCRYPTION_KEY", "key is not valid hex")
        assert "VAULT_ENCRYPTION_KEY" in error.to_log_format()
        assert error.context["config_key"] == "VAULT_ENCRYPTION_KEY"
