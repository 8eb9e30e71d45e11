"""RPKI Dash Database Module"""
from .core import RecordStore
from .exceptions import DatabaseError, SchemaError, StoreError
from .snapshots import Snapshot, snapshot_date

__all__ = [
    'RecordStore',
    'Snapshot',
    'snapshot_date',
    'DatabaseError',
    'SchemaError',
    'StoreError',
]
