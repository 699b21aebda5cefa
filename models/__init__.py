"""ORM models exposed by the Fieldsync client."""
from .queued_operation import OperationStatus, QueuedOperation

__all__ = ["OperationStatus", "QueuedOperation"]
