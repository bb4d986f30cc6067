"""
Link extraction and HTML detection for fetched pages.
"""

import re
import logging
from typing import List


DOCTYPE_PREFIX = "<!doctype html"

# <a ...href="target"...>, double-quoted values only
ANCHOR_HREF_PATTERN = re.compile(r'<a\s(?:[^>]*?\s)?href="([^"]*)"', re.IGNORECASE)

logger = logging.getLogger(__name__)


def is_html(text: str) -> bool:
    """Check that a document opens with an HTML doctype declaration."""
    return text.lstrip().lower().startswith(DOCTYPE_PREFIX)


def extract_links(text: str) -> List[str]:
    """
    Return the ``href`` targets of all anchor tags in document order.

    Targets are returned exactly as written: no resolution against the page
    URL, no entity decoding, duplicates kept.
    """
    links = ANCHOR_HREF_PATTERN.findall(text)
    logger.debug(f"Extracted {len(links)} links")
    return links
