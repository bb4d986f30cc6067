"""
Storage layer for the web crawler system.
"""

from .database import (
    PageStore, Page, DatabaseError, StorageFault, DuplicateUrl, PageNotFound,
    LINK_DELIMITER
)
from .lease import PageLease

__all__ = [
    'PageStore', 'Page', 'PageLease', 'LINK_DELIMITER',
    'DatabaseError', 'StorageFault', 'DuplicateUrl', 'PageNotFound'
]
