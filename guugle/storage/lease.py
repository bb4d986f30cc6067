"""
Scoped ownership of a frontier page.
"""

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .database import PageStore


class PageLease:
    """
    Exclusive claim of one worker on one page row.

    Creating the lease durably sets ``in_use`` on the row. The flag is cleared
    again exactly once, either by ``release()`` or when the ``with`` block
    around the lease exits, whatever the exit path::

        lease = store.lease_next()
        if lease is not None:
            with lease:
                ...
    """

    def __init__(self, store: 'PageStore', page_id: int, url: str):
        self.store = store
        self.page_id = page_id
        self.url = url
        self._released = False
        self._release_lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

        store.set_in_use(page_id, True)
        self.logger.debug(f"Leased page {page_id}: {url}")

    def __enter__(self) -> 'PageLease':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else "held"
        return f"PageLease(page_id={self.page_id}, url={self.url!r}, {state})"

    @property
    def released(self) -> bool:
        return self._released

    def release(self):
        """Give the page back to the store. Later calls do nothing."""
        with self._release_lock:
            if self._released:
                return
            self.store.release(self.page_id)
            self._released = True
        self.logger.debug(f"Released page {self.page_id}")
