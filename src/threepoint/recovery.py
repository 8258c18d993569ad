class ThreePointError(Exception):
    """Base exception for all threepoint errors."""
    pass

class RecoverableError(ThreePointError):
    """An error that can be recovered from without data loss."""
    pass

class FatalError(ThreePointError):
    """An error that requires application termination or major intervention."""
    pass

class CorruptionError(FatalError):
    """Corrupted Data Error - from syntax errors in data formats, to just unknown data"""
    pass

class FileOperationError(RecoverableError):
    """File operation failed but can be retried."""
    pass

class MigrationNeededError(RecoverableError):
    """ Data is valid, but was written for another schema version """
    pass

class ShareLinkError(RecoverableError):
    """A share token or link could not be decoded."""
    pass

class UnknownRecordError(RecoverableError):
    """A task, group or phase id does not exist in the store."""
    pass

class ProtectedRecordError(RecoverableError):
    """The sentinel default phase or group cannot be removed."""
    pass
