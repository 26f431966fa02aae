"""
Unit tests for exceptions module.

Tests exception messages, the error classification of each exception type
and the helpers mapping exceptions to retry and batch decisions.
"""

import logging

import pytest

from docshift.exceptions import (
    BatchProcessingError,
    ConfigurationUpdateError,
    CredentialResolutionError,
    DocshiftError,
    DuplicateKeyError,
    ErrorRecoverability,
    ErrorSeverity,
    InvalidPayloadError,
    MigrationStalledError,
    RollbackNotForcedError,
    StepFailedError,
    StoreConnectionError,
    StoreError,
    TransientWriteError,
    VerificationMismatchError,
    classify_exception,
    classify_write_error,
    log_classified_error,
)
from docshift.models import BatchClassification, VerificationReport


class TestDocshiftError:
    """Tests for the base DocshiftError."""

    def test_message_without_collection(self):
        """Test str() is the bare message."""
        assert str(DocshiftError("boom")) == "boom"

    def test_message_with_collection(self):
        """Test the collection is appended to str()."""
        error = DocshiftError("boom", collection="markers")
        assert str(error) == "boom collection=markers"
        assert error.collection == "markers"

    def test_default_classification_is_fatal(self):
        error = DocshiftError("boom")
        assert error.classification.recoverability == ErrorRecoverability.FATAL
        assert error.classification.error_code == "DOCSHIFT_ERROR"

    def test_classification_names_category(self):
        classification = DocshiftError("boom", collection="areas").classification
        assert classification.severity == ErrorSeverity.ERROR
        assert classification.category == "general"


class TestStoreErrors:
    """Tests for errors raised by store handles."""

    def test_connection_error_message_names_label(self):
        error = StoreConnectionError("target", "timed out")
        assert error.label == "target"
        assert str(error) == "target store unavailable: timed out"
        assert error.classification.recoverability == ErrorRecoverability.TRANSIENT

    def test_transient_write_error(self):
        error = TransientWriteError("not primary", collection="markers")
        assert error.original_error == "not primary"
        assert error.classification.recoverability.should_retry

    def test_duplicate_key_error_counts(self):
        error = DuplicateKeyError("E11000", inserted_count=3, duplicate_count=7)
        assert error.inserted_count == 3
        assert error.duplicate_count == 7
        assert error.classification.recoverability == ErrorRecoverability.RECOVERABLE
        assert not error.classification.recoverability.should_retry

    def test_store_errors_share_base(self):
        for cls in (StoreConnectionError, TransientWriteError, DuplicateKeyError):
            assert issubclass(cls, StoreError)
            assert issubclass(cls, DocshiftError)


class TestInvocationErrors:
    """Tests for payload and credential errors."""

    def test_invalid_payload_details(self):
        error = InvalidPayloadError("bad payload", details=["batchSize: too small"])
        assert error.details == ["batchSize: too small"]
        assert error.classification.recoverability == ErrorRecoverability.FATAL

    def test_invalid_payload_details_default_empty(self):
        assert InvalidPayloadError("bad payload").details == []

    def test_credential_error_names_reference_only(self):
        error = CredentialResolutionError("chronas/docdb/target", "AccessDeniedException")
        assert error.credential_ref == "chronas/docdb/target"
        assert "chronas/docdb/target" in str(error)
        assert "AccessDeniedException" in str(error)


class TestMigrationErrors:
    """Tests for errors raised during migration and orchestration."""

    def test_batch_processing_error_keeps_resume_token(self):
        error = BatchProcessingError("markers", 2000, "write failed")
        assert error.resume_token == 2000
        assert error.original_error == "write failed"
        assert "offset 2000" in str(error)
        assert error.classification.recoverability.should_retry

    def test_stalled_error_is_not_retried(self):
        error = MigrationStalledError("markers", 1000)
        assert error.offset == 1000
        assert not error.classification.recoverability.should_retry

    def test_verification_mismatch_lists_collections(self):
        reports = [
            VerificationReport.failed("users", "timeout"),
            VerificationReport.failed("areas", "timeout"),
        ]
        error = VerificationMismatchError(reports)
        assert error.reports == reports
        assert str(error) == "Verification failed for: users, areas"
        assert error.classification.severity == ErrorSeverity.CRITICAL
        assert not error.classification.recoverability.should_retry

    def test_rollback_not_forced_message(self):
        assert str(RollbackNotForcedError()) == "Rollback requires force=true parameter for safety"

    def test_configuration_update_error(self):
        error = ConfigurationUpdateError("chronas/app/config", "AccessDenied")
        assert error.config_ref == "chronas/app/config"
        assert error.classification.recoverability.should_retry

    def test_step_failed_message(self):
        cause = RuntimeError("connection reset")
        error = StepFailedError("Migration", 3, cause)
        assert error.step_name == "Migration"
        assert error.attempts == 3
        assert error.last_error is cause
        assert str(error) == "Migration failed after 3 attempts: connection reset"


class TestErrorSeverity:
    """Tests for ErrorSeverity helpers."""

    @pytest.mark.parametrize(
        ("severity", "alert"),
        [
            (ErrorSeverity.CRITICAL, True),
            (ErrorSeverity.ERROR, True),
            (ErrorSeverity.WARNING, False),
            (ErrorSeverity.INFO, False),
        ],
    )
    def test_should_alert(self, severity, alert):
        assert severity.should_alert is alert

    def test_log_level(self):
        assert ErrorSeverity.CRITICAL.log_level == logging.CRITICAL
        assert ErrorSeverity.INFO.log_level == logging.INFO


class TestClassifyException:
    """Tests for classify_exception."""

    def test_docshift_error_uses_own_classification(self):
        classification = classify_exception(RollbackNotForcedError())
        assert classification.error_code == "ROLLBACK_NOT_FORCED"

    def test_unknown_exception_is_transient(self):
        classification = classify_exception(ValueError("odd"))
        assert classification.error_code == "UNKNOWN_ERROR"
        assert classification.recoverability == ErrorRecoverability.TRANSIENT

    def test_write_error_classification(self):
        classification = classify_exception(TransientWriteError("x"))
        assert classification.severity == ErrorSeverity.WARNING
        assert classification.recoverability == ErrorRecoverability.TRANSIENT
        assert classification.error_code == "TRANSIENT_WRITE_ERROR"
        assert classification.category == "write"


class TestLogClassifiedError:
    """Tests for log_classified_error."""

    def test_logs_at_severity_level_without_traceback(self, caplog):
        log = logging.getLogger("docshift.test")
        error = DuplicateKeyError("E11000", inserted_count=0, duplicate_count=500)

        with caplog.at_level(logging.DEBUG, logger="docshift.test"):
            classification = log_classified_error(log, "Batch processing", error)

        assert classification.error_code == "DUPLICATE_KEY"
        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert record.exc_info is None
        assert "Error in 'Batch processing'" in record.getMessage()
        assert "code=DUPLICATE_KEY" in record.getMessage()
        assert "recoverable=recoverable" in record.getMessage()

    def test_alerting_errors_carry_traceback(self, caplog):
        log = logging.getLogger("docshift.test")
        reports = [VerificationReport.failed("users", "timeout")]
        error = VerificationMismatchError(reports)

        with caplog.at_level(logging.DEBUG, logger="docshift.test"):
            log_classified_error(log, "Pre-validation", error)

        record = caplog.records[-1]
        assert record.levelno == logging.CRITICAL
        assert record.exc_info is not None
        assert record.exc_info[1] is error

    def test_unknown_exception_logged_as_error(self, caplog):
        log = logging.getLogger("docshift.test")

        with caplog.at_level(logging.DEBUG, logger="docshift.test"):
            log_classified_error(log, "Status check", KeyError("count"))

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert "code=UNKNOWN_ERROR" in record.getMessage()

    def test_transient_write_logged_as_warning(self, caplog):
        log = logging.getLogger("docshift.test")

        with caplog.at_level(logging.DEBUG, logger="docshift.test"):
            log_classified_error(log, "Batch processing", TransientWriteError("not primary"))

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.exc_info is None


class TestClassifyWriteError:
    """Tests for classify_write_error."""

    def test_duplicate_key_is_skipped(self):
        assert classify_write_error(DuplicateKeyError("E11000")) == BatchClassification.DUPLICATE_SKIP

    def test_other_errors_are_fatal(self):
        assert classify_write_error(TransientWriteError("x")) == BatchClassification.FATAL
        assert classify_write_error(OSError("reset")) == BatchClassification.FATAL
