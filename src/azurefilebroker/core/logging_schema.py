"""Logging field schema - v1.0

Standard fields (added to all logs):
- schema_version: Log schema version
- service: Service name (azurefilebroker)
- component: Component name (broker, store, azure)
- event: Event type (operation_started, share_created, etc.)
- operation_id: Per-call correlation ID
- duration_ms: Duration in milliseconds

High cardinality fields (OK in logs, NOT in metric labels):
- instance_id: Service instance ID
- binding_id: Service binding ID
- file_share: File share name
- lock: Advisory lock name
"""

from enum import StrEnum


class LogEvent(StrEnum):
    """Standard log event types.

    Use these event types in the 'event' extra field for consistent
    log filtering and analysis.
    """

    # Broker operation events
    OPERATION_STARTED = "operation_started"
    OPERATION_SUCCESS = "operation_success"
    OPERATION_FAILED = "operation_failed"

    # Storage account events
    ACCOUNT_REUSED = "account_reused"
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_DELETED = "account_deleted"

    # File share reference counting events
    SHARE_ADOPTED = "share_adopted"
    SHARE_CREATED = "share_created"
    SHARE_REFERENCED = "share_referenced"
    SHARE_RELEASED = "share_released"
    SHARE_DELETED = "share_deleted"
    SHARE_DELETE_FAILED = "share_delete_failed"
    SHARE_RECORD_REMOVED = "share_record_removed"

    # Lock events
    LOCK_ACQUIRED = "lock_acquired"
    LOCK_RELEASED = "lock_released"
    LOCK_TIMEOUT = "lock_timeout"
    LOCK_RELEASE_FAILED = "lock_release_failed"

    # Store events
    STATE_SAVED = "state_saved"
    STATE_RESTORED = "state_restored"
    STORE_CONNECTED = "store_connected"
    STORE_ERROR = "store_error"

    # Lifecycle events
    BROKER_CONFIGURED = "broker_configured"
    BROKER_CREATED = "broker_created"


class Component(StrEnum):
    """Component identifiers for log filtering."""

    BROKER = "broker"
    STORE = "store"
    AZURE = "azure"
