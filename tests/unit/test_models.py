"""
Unit tests for the migration data model.

Tests cover:
- MigrationJob validation, payload aliases and resume
- MigrationResult counters, invariants and serialization
- CollectionProgress derived from counts
- Verification, status and orchestration records
"""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from docshift.models import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_TIME_BUDGET_MS,
    BatchClassification,
    BatchOutcome,
    CollectionProgress,
    MigrationJob,
    MigrationResult,
    OrchestrationRun,
    OrchestrationState,
    StepRecord,
    StepStatus,
    StopReason,
    VerificationReport,
    VerificationStatus,
)


class TestMigrationJob:
    """Tests for MigrationJob."""

    def test_defaults(self):
        job = MigrationJob(collection_name="markers")
        assert job.batch_size == DEFAULT_BATCH_SIZE
        assert job.start_offset == 0
        assert job.max_batches is None
        assert job.time_budget_ms == DEFAULT_TIME_BUDGET_MS
        assert job.dry_run is False
        assert job.progress_interval == 10

    def test_accepts_camel_case_payload(self):
        job = MigrationJob.model_validate(
            {"collectionName": "areas", "batchSize": 250, "startOffset": 500, "dryRun": True}
        )
        assert job.collection_name == "areas"
        assert job.batch_size == 250
        assert job.start_offset == 500
        assert job.dry_run is True

    @pytest.mark.parametrize(
        "overrides",
        [
            {"collection_name": ""},
            {"batch_size": 0},
            {"start_offset": -1},
            {"max_batches": 0},
            {"time_budget_ms": 0},
            {"progress_interval": 0},
        ],
    )
    def test_rejects_invalid_values(self, overrides):
        values = {"collection_name": "markers", **overrides}
        with pytest.raises(ValidationError):
            MigrationJob(**values)

    def test_is_immutable(self):
        job = MigrationJob(collection_name="markers")
        with pytest.raises(ValidationError):
            job.batch_size = 5

    def test_resume_starts_at_token(self):
        job = MigrationJob(collection_name="markers", batch_size=1000, max_batches=1)
        result = MigrationResult(collection_name="markers", batch_size=1000, start_offset=0)
        result.next_resume_token = 1000

        resumed = job.resume(result)

        assert resumed.start_offset == 1000
        assert resumed.batch_size == 1000
        assert resumed.max_batches == 1
        assert job.start_offset == 0

    def test_resume_of_completed_result_raises(self):
        job = MigrationJob(collection_name="markers")
        result = MigrationResult(collection_name="markers", batch_size=1000, start_offset=0)
        result.completed = True

        with pytest.raises(ValueError, match="already completed"):
            job.resume(result)


class TestMigrationResult:
    """Tests for MigrationResult."""

    def _result(self, start_offset: int = 0, total: int = 2500) -> MigrationResult:
        return MigrationResult(
            collection_name="markers",
            batch_size=1000,
            start_offset=start_offset,
            total_documents=total,
            remaining_documents=max(0, total - start_offset),
        )

    def test_advance_keeps_remaining_invariant(self):
        result = self._result(start_offset=1000)
        result.advance(1000)

        assert result.processed_batches == 1
        assert result.processed_documents == 1000
        assert result.current_offset == 2000
        assert result.remaining_documents == 500

    def test_remaining_never_negative(self):
        result = self._result(start_offset=2000)
        result.advance(1000)
        assert result.remaining_documents == 0

    def test_success_ignores_duplicate_skips(self):
        result = self._result()
        result.record_error(1, 0, "E11000", BatchClassification.DUPLICATE_SKIP)
        assert result.success is True

    def test_fatal_error_fails_result(self):
        result = self._result()
        error = result.record_error(2, 1000, "write failed", BatchClassification.FATAL)
        assert result.success is False
        assert error.batch_number == 2
        assert error.offset == 1000

    def test_duration_ms(self):
        result = self._result()
        assert result.duration_ms is None
        result.finished_at = result.started_at + timedelta(milliseconds=1500)
        assert result.duration_ms == 1500

    def test_to_dict_uses_camel_case(self):
        result = self._result()
        result.advance(1000)
        result.next_resume_token = 1000
        result.stop_reason = StopReason.BATCH_LIMIT
        result.record_error(1, 0, "E11000", BatchClassification.DUPLICATE_SKIP)

        data = result.to_dict()

        assert data["collectionName"] == "markers"
        assert data["processedBatches"] == 1
        assert data["processedDocuments"] == 1000
        assert data["remainingDocuments"] == 1500
        assert data["nextResumeToken"] == 1000
        assert data["stopReason"] == "batch-limit"
        assert data["success"] is True
        assert data["errors"][0]["classification"] == "duplicate-skip"
        assert data["errors"][0]["batchNumber"] == 1


class TestBatchOutcome:
    def test_is_fatal(self):
        fatal = BatchOutcome(10, 0, BatchClassification.FATAL, error="x", attempts=3)
        ok = BatchOutcome(10, 10, BatchClassification.OK)
        assert fatal.is_fatal
        assert not ok.is_fatal


class TestCollectionProgress:
    """Tests for CollectionProgress.from_counts."""

    def test_partial_progress(self):
        progress = CollectionProgress.from_counts("markers", 2500, 1000)
        assert progress.migrated_count == 1000
        assert progress.remaining_count == 1500
        assert progress.progress_percent == 40.0
        assert progress.completed is False

    def test_empty_source_is_zero_percent(self):
        progress = CollectionProgress.from_counts("markers", 0, 0)
        assert progress.progress_percent == 0.0
        assert progress.completed is True

    def test_remaining_never_negative(self):
        progress = CollectionProgress.from_counts("markers", 10, 12)
        assert progress.remaining_count == 0
        assert progress.completed is False

    def test_to_dict_formats_percent(self):
        data = CollectionProgress.from_counts("markers", 3, 1).to_dict()
        assert data["progressPercent"] == "33.3"
        assert data["remainingCount"] == 2
        assert "remaining" not in data


class TestVerificationReport:
    def test_failed_report(self):
        report = VerificationReport.failed("users", "connection reset")
        assert report.status == VerificationStatus.ERROR
        assert not report.is_match
        assert report.to_dict() == {
            "collection": "users",
            "status": "error",
            "error": "connection reset",
        }

    def test_match_report_to_dict(self):
        report = VerificationReport(
            collection="areas",
            status=VerificationStatus.MATCH,
            old_count=5,
            new_count=5,
            counts_match=True,
            old_index_count=2,
            new_index_count=2,
            indexes_match=True,
            sample_shape_match=True,
        )
        data = report.to_dict()
        assert report.is_match
        assert data["oldCount"] == 5
        assert data["newIndexCount"] == 2
        assert data["status"] == "match"


class TestOrchestrationRecords:
    def test_terminal_states(self):
        assert OrchestrationState.DONE.is_terminal
        assert OrchestrationState.FAILED.is_terminal
        assert not OrchestrationState.MIGRATION.is_terminal

    def test_run_to_dict(self):
        run = OrchestrationRun(dry_run=True)
        run.steps.append(StepRecord("PreValidation", StepStatus.SUCCESS, 1))
        run.finished_at = datetime.now(UTC)

        data = run.to_dict()

        assert data["dryRun"] is True
        assert data["rollbackExecuted"] is False
        assert data["state"] == "PreValidation"
        assert data["steps"][0]["step"] == "PreValidation"
        assert data["steps"][0]["status"] == "success"
