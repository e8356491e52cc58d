"""
Orchestration for the URL discovery pipeline: execution, approvals,
storage adapters, events and settings.
"""

from .approvals import (
    approve_run,
    apply_validation,
    batch_decide,
    create_approval_records,
    decide,
    derive_run_status,
    get_results,
    promote,
    reject_run,
    summarize,
)
from .config import (
    Settings,
    configure_logging,
    load_entities_file,
    load_run_config,
    PROJECT_ROOT,
    DATA_DIR,
)
from .datastore import Datastore, JsonFileDatastore, MemoryDatastore, fetch_all
from .errors import (
    InputError,
    NotFoundError,
    PipelineError,
    StorageError,
    SubmoduleNotFoundError,
    TableMissingError,
)
from .events import EventPublisher
from .executor import ExecuteRequest, Orchestrator
from .run_logger import RunLogger

__all__ = [
    "Orchestrator",
    "ExecuteRequest",
    "approve_run",
    "apply_validation",
    "batch_decide",
    "create_approval_records",
    "decide",
    "derive_run_status",
    "get_results",
    "promote",
    "reject_run",
    "summarize",
    "Settings",
    "configure_logging",
    "load_entities_file",
    "load_run_config",
    "PROJECT_ROOT",
    "DATA_DIR",
    "Datastore",
    "JsonFileDatastore",
    "MemoryDatastore",
    "fetch_all",
    "EventPublisher",
    "RunLogger",
    "PipelineError",
    "InputError",
    "NotFoundError",
    "SubmoduleNotFoundError",
    "StorageError",
    "TableMissingError",
]
