"""
Page storage for the crawler.
A single SQLite table acts as both the crawl frontier and the search corpus.
"""

import logging
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .lease import PageLease


LINK_DELIMITER = ":::"

SCHEMA = """
CREATE TABLE IF NOT EXISTS pages (
    id INTEGER NOT NULL PRIMARY KEY,
    visited BOOLEAN NOT NULL DEFAULT 0 CHECK (visited IN (0, 1)),
    url TEXT NOT NULL UNIQUE,
    content TEXT,
    links_to TEXT,
    in_use BOOLEAN NOT NULL DEFAULT 0 CHECK (in_use IN (0, 1))
)
"""

_COLUMNS = "id, visited, url, content, links_to, in_use"


class DatabaseError(Exception):
    """Base exception for page store operations."""
    pass


class StorageFault(DatabaseError):
    """The store file could not be opened or the schema could not be created."""
    pass


class DuplicateUrl(DatabaseError):
    """A page with this URL already exists."""

    def __init__(self, url: str):
        super().__init__(f"URL already stored: {url}")
        self.url = url


class PageNotFound(DatabaseError):
    """No page with the requested id."""

    def __init__(self, page_id: int):
        super().__init__(f"No page with id {page_id}")
        self.page_id = page_id


@dataclass
class Page:
    """A row of the pages table."""
    id: int
    visited: bool
    url: str
    content: Optional[str] = None
    links_to: Optional[str] = None
    in_use: bool = False

    @classmethod
    def from_row(cls, row: Sequence) -> 'Page':
        return cls(
            id=row[0],
            visited=bool(row[1]),
            url=row[2],
            content=row[3],
            links_to=row[4],
            in_use=bool(row[5])
        )

    @property
    def links(self) -> List[str]:
        """Outbound link targets in recorded order."""
        if not self.links_to:
            return []
        return self.links_to.split(LINK_DELIMITER)


def join_links(links: Sequence[str]) -> str:
    return LINK_DELIMITER.join(links)


class PageStore:
    """
    Durable bookkeeping of the frontier and the corpus.

    One connection is shared by every worker thread. All statements run under
    a single lock, so each operation is serialized against all others.
    """

    def __init__(self, connection: sqlite3.Connection, path: str):
        self._conn = connection
        self._lock = threading.RLock()
        self.path = path
        self.logger = logging.getLogger(__name__)

    @classmethod
    def open(cls, path: str) -> 'PageStore':
        """
        Open or create the store at ``path``.

        Every ``in_use`` flag is cleared, since a lease cannot survive the
        process that held it.

        Raises:
            StorageFault: if the file cannot be opened or the schema created
        """
        if path != ":memory:":
            parent = Path(path).parent
            try:
                parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageFault(f"Cannot create directory {parent}: {e}") from e

        try:
            connection = sqlite3.connect(path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageFault(f"Cannot open page store {path}: {e}") from e

        store = cls(connection, path)
        try:
            with connection:
                connection.execute(SCHEMA)
            cleared = store.reset_in_use()
        except sqlite3.Error as e:
            connection.close()
            raise StorageFault(f"Cannot initialize schema in {path}: {e}") from e

        store.logger.info(f"Page store opened at {path}")
        if cleared:
            store.logger.info(f"Released {cleared} stale leases")
        return store

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        with self._lock:
            self._conn.close()
        self.logger.debug(f"Page store closed: {self.path}")

    def _execute(self, sql: str, params: Sequence = ()) -> sqlite3.Cursor:
        with self._lock, self._conn:
            return self._conn.execute(sql, params)

    def _fetchone(self, sql: str, params: Sequence = ()) -> Optional[Tuple]:
        with self._lock, self._conn:
            return self._conn.execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: Sequence = ()) -> List[Tuple]:
        with self._lock, self._conn:
            return self._conn.execute(sql, params).fetchall()

    def reset_in_use(self) -> int:
        """Clear every lease flag. Returns the number of rows that were leased."""
        cursor = self._execute("UPDATE pages SET in_use = 0 WHERE in_use = 1")
        return cursor.rowcount

    def insert_unvisited(self, url: str) -> int:
        """
        Add a newly discovered page to the frontier.

        Returns:
            The id of the new row

        Raises:
            DuplicateUrl: if the URL is already stored
        """
        try:
            cursor = self._execute("INSERT INTO pages (url) VALUES (?)", (url,))
        except sqlite3.IntegrityError as e:
            raise DuplicateUrl(url) from e
        self.logger.debug(f"Discovered page {cursor.lastrowid}: {url}")
        return cursor.lastrowid

    def claim_next(self) -> Optional[Tuple[int, str]]:
        """
        Atomically mark one unvisited, unleased page as leased.

        Returns:
            ``(id, url)`` of the claimed page, or None if nothing is leasable
        """
        # RETURNING rows must be drained before the commit
        rows = self._fetchall(
            """
            UPDATE pages SET in_use = 1
            WHERE id = (
                SELECT id FROM pages
                WHERE in_use = 0 AND visited = 0
                ORDER BY id LIMIT 1
            ) AND in_use = 0 AND visited = 0
            RETURNING id, url
            """
        )
        return tuple(rows[0]) if rows else None

    def lease_next(self) -> Optional[PageLease]:
        """Claim the next frontier page and wrap it in a lease guard."""
        claimed = self.claim_next()
        if claimed is None:
            return None
        page_id, url = claimed
        try:
            return PageLease(self, page_id, url)
        except Exception:
            self.release(page_id)
            raise

    def set_in_use(self, page_id: int, state: bool) -> int:
        self._execute("UPDATE pages SET in_use = ? WHERE id = ?", (int(state), page_id))
        return page_id

    def release(self, page_id: int) -> int:
        """Clear the lease flag of a page. Safe to call more than once."""
        return self.set_in_use(page_id, False)

    def record_visited(self, page_id: int, content: str, links: Sequence[str]) -> int:
        """Move a page from the frontier into the corpus."""
        cursor = self._execute(
            "UPDATE pages SET visited = 1, content = ?, links_to = ? WHERE id = ?",
            (content, join_links(links), page_id)
        )
        if cursor.rowcount == 0:
            raise PageNotFound(page_id)
        self.logger.debug(f"Crawled webpage with id: {page_id}")
        return page_id

    def is_frontier_empty(self) -> bool:
        """
        True if no page is waiting to be visited.

        Pages leased by a worker still count as frontier, but links that a
        worker has fetched and not yet inserted do not.
        """
        return self.count_frontier() == 0

    def count_frontier(self) -> int:
        row = self._fetchone("SELECT COUNT(*) FROM pages WHERE visited = 0")
        return row[0]

    def count_pages(self) -> int:
        row = self._fetchone("SELECT COUNT(*) FROM pages")
        return row[0]

    def get_page(self, page_id: int) -> Page:
        row = self._fetchone(f"SELECT {_COLUMNS} FROM pages WHERE id = ?", (page_id,))
        if row is None:
            raise PageNotFound(page_id)
        return Page.from_row(row)

    def all_pages(self) -> List[Page]:
        rows = self._fetchall(f"SELECT {_COLUMNS} FROM pages ORDER BY id")
        return [Page.from_row(row) for row in rows]

    def count_inbound_links(self, page_id: int) -> int:
        """
        Count pages whose recorded links contain this page's URL.

        This is plain substring containment, so ``ep.ch`` is also counted
        inside ``step.ch``.
        """
        url = self.get_page(page_id).url
        row = self._fetchone(
            "SELECT COUNT(*) FROM pages WHERE instr(links_to, ?) > 0",
            (url,)
        )
        return row[0]

    def search(self, query: str, limit: Optional[int] = None) -> List[Page]:
        """
        Find pages whose URL or content contains any token of ``query``.

        Tokens are split on whitespace and matched case-sensitively as
        substrings. Results come back in insertion order.
        """
        tokens = query.split()
        if not tokens:
            return []

        conditions = []
        params: List = []
        for column in ("url", "content"):
            for token in tokens:
                conditions.append(f"instr({column}, ?) > 0")
                params.append(token)

        params.append(-1 if limit is None else limit)
        rows = self._fetchall(
            f"SELECT {_COLUMNS} FROM pages WHERE {' OR '.join(conditions)} "
            f"ORDER BY id LIMIT ?",
            params
        )
        return [Page.from_row(row) for row in rows]
