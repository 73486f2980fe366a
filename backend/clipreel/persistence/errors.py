"""
Persistence-specific errors.
"""


class PersistenceError(Exception):
    """Base exception for persistence operations."""
    
    pass


class SchemaError(PersistenceError):
    """Schema migration or validation failed."""
    
    pass
