"""Keyword search and relevance scoring over the global search index."""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from answer_machine.config import settings
from answer_machine.models import GlobalSearchItem

logger = logging.getLogger(__name__)

TITLE_WEIGHT = 5
TAG_WEIGHT = 3
CONTENT_WEIGHT = 1
MIN_RELEVANCE_SCORE = 1


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so `%` and `_` in a keyword match literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def score_item(item: GlobalSearchItem, keywords: List[str], now: Optional[datetime] = None) -> Tuple[int, str]:
    """
    Relevance score of one index row for `keywords`.

    Title matches weigh highest, then tags, then body text. Items updated
    within 7 days get +2, within 30 days +1.
    """
    now = now or datetime.utcnow()
    lowered = [k.lower() for k in keywords if k]
    score = 0
    reasons = []

    if item.title:
        title = item.title.lower()
        matches = [k for k in lowered if k in title]
        if matches:
            score += len(matches) * TITLE_WEIGHT
            reasons.append(f"Title matches: {', '.join(matches)}")

    if item.tags:
        keyword_set = set(lowered)
        tag_matches = [t for t in item.tags if isinstance(t, str) and t.lower() in keyword_set]
        if tag_matches:
            score += len(tag_matches) * TAG_WEIGHT
            reasons.append(f"Tag matches: {', '.join(tag_matches)}")

    if item.content:
        content = item.content.lower()
        matches = [k for k in lowered if k in content]
        if matches:
            score += len(matches) * CONTENT_WEIGHT
            if not reasons:
                reasons.append(f"Content matches: {', '.join(matches[:3])}")

    if item.updated_at:
        age_days = (now - item.updated_at).total_seconds() / 86400
        if age_days < 7:
            score += 2
            reasons.append("Recently updated")
        elif age_days < 30:
            score += 1

    return score, "; ".join(reasons) or "General relevance"


class ContextSearch:
    """Finds the context items most relevant to a set of keywords."""

    def __init__(self, db: Session):
        self.db = db
        self.search_limit = settings.CONTEXT_SEARCH_LIMIT
        self.top_k = settings.CONTEXT_TOP_K

    def search(self, keywords: List[str], username: str) -> List[GlobalSearchItem]:
        """Case-insensitive title/content match for any keyword."""
        keywords = [k for k in keywords if k and k.strip()]
        if not keywords:
            return []

        conditions = []
        for keyword in keywords:
            pattern = f"%{escape_like(keyword.strip())}%"
            conditions.append(GlobalSearchItem.title.ilike(pattern, escape="\\"))
            conditions.append(GlobalSearchItem.content.ilike(pattern, escape="\\"))

        return (
            self.db.query(GlobalSearchItem)
            .filter(GlobalSearchItem.username == username, or_(*conditions))
            .limit(self.search_limit)
            .all()
        )

    def search_context_ids(self, keywords: List[str], username: str) -> List[str]:
        """Entity ids of the top scored items. Search failures yield an empty list."""
        try:
            results = self.search(keywords, username)
            if not results:
                logger.info("No context search results found")
                return []

            now = datetime.utcnow()
            scored = []
            for item in results:
                score, reason = score_item(item, keywords, now)
                if score >= MIN_RELEVANCE_SCORE:
                    scored.append((item, score, reason))

            scored.sort(key=lambda x: x[1], reverse=True)
            context_ids = [str(item.entity_id) for item, _, _ in scored[: self.top_k]]

            logger.info(f"Found {len(context_ids)} relevant context items for {len(keywords)} keywords")
            return context_ids

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error searching context: {e}", exc_info=True)
            return []
