"""
Pydantic schemas for Relay pagination requests and responses.
"""

# Re-export schemas for convenient imports.
from .connection import BackwardPaginationArgs as BackwardPaginationArgs
from .connection import Connection as Connection
from .connection import Cursor as Cursor
from .connection import CursorData as CursorData
from .connection import Edge as Edge
from .connection import ForwardPaginationArgs as ForwardPaginationArgs
from .connection import PageInfo as PageInfo
from .connection import PaginationArgs as PaginationArgs
from .connection import RelayPaginationArgs as RelayPaginationArgs
