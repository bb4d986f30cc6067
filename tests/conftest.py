"""Shared fixtures: fresh page stores and a small crawled corpus."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Generator, Iterable, Tuple

import pytest

from guugle.storage.database import PageStore


LOREM_PAGE = (
    "<html><body><h1>\n"
    "Laborum nulla quis deserunt labore quis cupidatat reprehenderit amet consequat "
    "reprehenderit tempor anim sint amet. Eiusmod fugiat eu aliqua qui do proident "
    "adipisicing. Dolore esse laborum voluptate in qui in ex. Sunt exercitation sit "
    "dolore cillum. Nostrud non aliqua sit anim aliqua labore Lorem quis nostrud. "
    "Exercitation ex nulla in laborum eu non voluptate consectetur.\n"
    "Incididunt anim voluptate aliqua et commodo cillum. Adipisicing fugiat ea "
    "consectetur cupidatat quis velit duis. Ad fugiat id quis proident qui mollit eu "
    "fugiat exercitation. Consectetur velit tempor esse reprehenderit laboris ea labore "
    "consectetur ut irure cupidatat in mollit. Dolore consequat amet id ipsum deserunt "
    "in eiusmod. Sunt excepteur eu eiusmod voluptate est mollit elit sunt laboris "
    "nostrud. Culpa non ea ad ex veniam et aute.\n\n"
    "Tempor enim non laborum enim ut duis laborum. Dolore nisi dolor Lorem anim "
    "occaecat non eu tempor incididunt. Consectetur aliquip reprehenderit fugiat magna. "
    "Est voluptate nisi id voluptate est cupidatat incididunt. Aute est qui mollit quis "
    "commodo irure ut eu ipsum sit ex cupidatat est adipisicing. Amet qui do cillum duis "
    "ad. Voluptate anim ipsum mollit sint incididunt.\n\n"
    "Eu nisi eu quis anim tempor fugiat deserunt est deserunt nulla ad do. Ipsum "
    "pariatur enim eiusmod minim cupidatat esse excepteur nostrud proident officia Lorem "
    "laboris esse. Excepteur reprehenderit anim duis exercitation labore nisi aliquip "
    "duis do. Id eiusmod dolore ex nulla nulla.\n"
    "</h1></body></html>"
)

# url, links_to, content; every row visited and unleased
CORPUS: Tuple[Tuple[str, str, str], ...] = (
    ("test.ch", "team-crystal.ch:::google.ch:::example.com",
     "team-crystal.ch:::google.ch:::example.com"),
    ("help.ch", "team-crystal.ch:::google.ch:::test.ch",
     "team-crystal.ch:::google.ch:::test.ch"),
    ("p.ch", "help.ch", "help.ch"),
    ("ep.ch", "team-crystal.ch:::help.ch", "team-crystal.ch::help.ch"),
    ("lp.ch", "help.ch:::google.ch", "help.ch:::google.ch"),
    ("hre.he", "test.ch:::lp.ch", LOREM_PAGE),
)


def insert_rows(path: Path, rows: Iterable[Tuple], visited: bool = True,
                in_use: bool = False) -> None:
    """Write raw ``(url, links_to, content)`` rows next to an open store."""
    connection = sqlite3.connect(str(path))
    try:
        with connection:
            connection.executemany(
                "INSERT INTO pages (url, links_to, in_use, visited, content) "
                "VALUES (?, ?, ?, ?, ?)",
                [(url, links_to, int(in_use), int(visited), content)
                 for url, links_to, content in rows]
            )
    finally:
        connection.close()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "pages.db3"


@pytest.fixture()
def store(store_path: Path) -> Generator[PageStore, None, None]:
    """Empty on-disk page store."""
    page_store = PageStore.open(str(store_path))
    yield page_store
    page_store.close()


@pytest.fixture()
def seeded_store(store: PageStore, store_path: Path) -> PageStore:
    """Store holding the six crawled pages of ``CORPUS`` with ids 1 to 6."""
    insert_rows(store_path, CORPUS)
    return store
