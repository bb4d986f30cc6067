"""
Keyword search ranking over the crawled corpus.

The score of a page is a fixed, explainable sum::

    outbound links + inbound links + keyword hits (+10 for a whole-phrase match)
"""

import re
import logging
from dataclasses import dataclass
from typing import List, Optional

from ..storage.database import PageStore, Page, LINK_DELIMITER


WHOLE_WORD_BONUS = 10

logger = logging.getLogger(__name__)


@dataclass
class RankedPage:
    """A search hit and its relevance score."""
    page: Page
    rank: int


def compute_rank(outbound_count: int, inbound_count: int,
                 keyword_hits: int, has_whole_word: bool) -> int:
    rank = outbound_count + inbound_count + keyword_hits
    if has_whole_word:
        rank += WHOLE_WORD_BONUS
    return rank


def count_outbound_links(links_to: Optional[str]) -> int:
    # Splitting an empty field still yields one (empty) entry, so a page
    # without outbound links counts 1.
    return len((links_to or "").split(LINK_DELIMITER))


def count_keyword_hits(query: str, text: str) -> int:
    """
    Count case-insensitive, non-overlapping occurrences of every query token.

    >>> count_keyword_hits("where do we go?", "We go to the church.")
    1
    """
    text = text.lower()
    return sum(text.count(token) for token in query.lower().split())


def has_whole_word(query: str, *texts: Optional[str]) -> bool:
    """True if the full query appears between non-word characters in any text."""
    pattern = re.compile(rf"\W{re.escape(query)}\W", re.IGNORECASE)
    return any(text and pattern.search(text) for text in texts)


def rank_page(store: PageStore, query: str, page: Page) -> RankedPage:
    content = page.content or ""
    rank = compute_rank(
        count_outbound_links(page.links_to),
        store.count_inbound_links(page.id),
        count_keyword_hits(query, page.url) + count_keyword_hits(query, content),
        has_whole_word(query, page.url, content)
    )
    return RankedPage(page=page, rank=rank)


def rank_pages(store: PageStore, query: str, limit: Optional[int] = None) -> List[RankedPage]:
    """
    Search the store and order the hits by descending rank.

    Pages with equal rank keep the order the store returned them in.

    Args:
        store: Page store to search
        query: Whitespace separated search words
        limit: Maximum number of candidate pages to score

    Returns:
        Ranked pages, best first; empty if nothing matches
    """
    candidates = store.search(query, limit)
    ranked = [rank_page(store, query, page) for page in candidates]
    ranked.sort(key=lambda ranked_page: ranked_page.rank, reverse=True)

    logger.debug(f"Ranked {len(ranked)} pages for query {query!r}")
    return ranked
