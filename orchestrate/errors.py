"""
Exceptions raised at the orchestration boundary.

Fetch failures and per-entity discovery failures are values, not
exceptions; these cover bad requests, missing records and storage.
"""


class PipelineError(Exception):
    """Base class for orchestration errors."""

    status = 500

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": str(self)}


class InputError(PipelineError):
    """Request is missing required input or has the wrong shape."""

    status = 400


class NotFoundError(PipelineError):
    """A referenced run, submodule run or approval does not exist."""

    status = 404


class SubmoduleNotFoundError(NotFoundError):
    def __init__(self, submodule_type: str, name: str):
        super().__init__(f"Submodule not found: {submodule_type}/{name}")
        self.submodule_type = submodule_type
        self.name = name


class StorageError(PipelineError):
    """Datastore failure."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class TableMissingError(StorageError):
    """The table does not exist (relation-does-not-exist, code 42P01)."""

    CODE = "42P01"

    def __init__(self, table: str):
        super().__init__(f'relation "{table}" does not exist', code=self.CODE)
        self.table = table
