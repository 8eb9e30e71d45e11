"""Database exception definitions"""

from ..utils.error_handling import ErrorSeverity, RPKIDashError


class DatabaseError(RPKIDashError):
    """Base database exception"""

    def __init__(self, message: str):
        super().__init__(message, ErrorSeverity.FATAL,
                         "Check the record store path and disk space, then restart the run")


class SchemaError(DatabaseError):
    """Schema initialization or collection definition error"""
    pass


class StoreError(DatabaseError):
    """Insert, query, update or index failure"""
    pass
