"""
Search ranking for the crawled corpus.
"""

from .ranker import RankedPage, rank_pages, compute_rank

__all__ = ['RankedPage', 'rank_pages', 'compute_rank']
