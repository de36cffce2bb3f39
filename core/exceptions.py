# =============================================================================
# core/exceptions.py - Sync error taxonomy
# =============================================================================


class SyncError(Exception):
    """Base class for all directory sync errors"""


class InputFileError(SyncError):
    """CSV could not be read or lacks required columns; aborts the run"""


class MissingInputError(SyncError):
    """A record required for reconciliation was not supplied"""


class NotFoundError(SyncError):
    """Principal name absent from the cloud or local directory"""

    def __init__(self, principal_name: str, directory: str):
        super().__init__(f"{principal_name} not found in {directory}")
        self.principal_name = principal_name
        self.directory = directory


class WriteError(SyncError):
    """Attribute or manager write rejected by the local directory"""


class MappingError(SyncError):
    """Country text not present in the lookup table"""


class CrossReferenceError(SyncError):
    """Immutable identifier push to the cloud record was rejected"""
