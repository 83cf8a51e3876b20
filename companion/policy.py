"""
Content policy: reject requests whose free text signals a claimed family
relationship.

The keyword list is the policy surface. Matching is a plain
case-insensitive substring scan, so "son" also matches "person" or
"season"; that over-blocking is part of the policy.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

RELATIONSHIP_NOUNS = (
    "son",
    "daughter",
    "grandson",
    "granddaughter",
    "nephew",
    "niece",
    "cousin",
    "sibling",
    "brother",
    "sister",
    "mom",
    "dad",
    "mother",
    "father",
)

RELATIONSHIP_CLAIMS = (
    "your son",
    "your daughter",
    "your grandson",
    "your granddaughter",
    "I am your",
    "this is your",
    "from your",
    "your family",
)

IMPERSONATION_KEYWORDS = RELATIONSHIP_NOUNS + RELATIONSHIP_CLAIMS


def find_impersonation_keyword(text: str) -> Optional[str]:
    """Return the first keyword found in `text`, or None."""
    haystack = text.lower()
    for keyword in IMPERSONATION_KEYWORDS:
        if keyword.lower() in haystack:
            return keyword
    return None


def detect_impersonation(
    recipient_name: str,
    category: str,
    category_other: Optional[str],
    personality_text: str,
) -> bool:
    """
    Return True when the request must be rejected as an impersonation attempt.

    The recipient name is not scanned; names such as "Allison" would
    otherwise trip the "son" keyword.
    """
    buffer = f"{category} {category_other or ''} {personality_text}"
    keyword = find_impersonation_keyword(buffer)
    if keyword is not None:
        logger.info("Impersonation keyword matched", extra={"keyword": keyword})
        return True
    return False
