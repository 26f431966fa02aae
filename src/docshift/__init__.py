"""
docshift - Resumable, time-bounded batch migration of document collections.

This library provides:
- Batch Processor copying a collection in windows under a time budget
- Resume tokens so an interrupted copy continues where it stopped
- Duplicate-tolerant writes with retry and exponential backoff
- Verification, status and manual rollback of a migration
- A Migration Orchestrator sequencing validation, copy and cut-over
- MongoDB / Amazon DocumentDB and In-Memory document stores
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("docshift")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from docshift.batch_processor import BatchProcessor
from docshift.config import EngineSettings
from docshift.config_updater import (
    ConfigurationUpdater,
    InMemoryConfigurationUpdater,
    SecretsManagerConfigurationUpdater,
)
from docshift.credentials import (
    CredentialProvider,
    SecretsManagerCredentialProvider,
    StaticCredentialProvider,
    StoreCredentials,
)
from docshift.cursor import BatchCursor
from docshift.exceptions import (
    BatchProcessingError,
    ConfigurationUpdateError,
    CredentialResolutionError,
    DocshiftError,
    DuplicateKeyError,
    ErrorClassification,
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
from docshift.handlers import (
    HandlerDependencies,
    handle_batch,
    handle_orchestration,
    handle_resume,
    handle_status,
    handle_verification,
)
from docshift.indexes import IndexMigrationResult, migrate_indexes
from docshift.models import (
    BatchClassification,
    BatchError,
    BatchOutcome,
    CollectionProgress,
    MigrationJob,
    MigrationResult,
    OrchestrationRun,
    OrchestrationState,
    RollbackResult,
    StatusReport,
    StopReason,
    VerificationReport,
    VerificationStatus,
)
from docshift.orchestrator import MigrationOrchestrator
from docshift.retry import StepRetryPolicy, WriteRetryPolicy, write_with_retry
from docshift.stores import (
    DocumentStore,
    InMemoryDocumentStore,
    MongoDocumentStore,
    MongoStoreConnector,
    open_store_pair,
)
from docshift.verification import VerificationController

__all__ = [
    "__version__",
    # Engine
    "BatchCursor",
    "BatchProcessor",
    "VerificationController",
    "MigrationOrchestrator",
    "migrate_indexes",
    "IndexMigrationResult",
    "write_with_retry",
    "WriteRetryPolicy",
    "StepRetryPolicy",
    # Models
    "MigrationJob",
    "MigrationResult",
    "BatchOutcome",
    "BatchError",
    "BatchClassification",
    "StopReason",
    "CollectionProgress",
    "VerificationReport",
    "VerificationStatus",
    "StatusReport",
    "RollbackResult",
    "OrchestrationRun",
    "OrchestrationState",
    # Stores
    "DocumentStore",
    "InMemoryDocumentStore",
    "MongoDocumentStore",
    "MongoStoreConnector",
    "open_store_pair",
    # Configuration and credentials
    "EngineSettings",
    "StoreCredentials",
    "CredentialProvider",
    "StaticCredentialProvider",
    "SecretsManagerCredentialProvider",
    "ConfigurationUpdater",
    "InMemoryConfigurationUpdater",
    "SecretsManagerConfigurationUpdater",
    # Handlers
    "HandlerDependencies",
    "handle_batch",
    "handle_resume",
    "handle_status",
    "handle_verification",
    "handle_orchestration",
    # Exceptions
    "DocshiftError",
    "StoreError",
    "StoreConnectionError",
    "TransientWriteError",
    "DuplicateKeyError",
    "InvalidPayloadError",
    "CredentialResolutionError",
    "BatchProcessingError",
    "MigrationStalledError",
    "VerificationMismatchError",
    "RollbackNotForcedError",
    "ConfigurationUpdateError",
    "StepFailedError",
    "ErrorClassification",
    "ErrorSeverity",
    "ErrorRecoverability",
    "classify_exception",
    "classify_write_error",
    "log_classified_error",
]
