"""
Keyword-based category detection used to narrow the similarity search.

Detection is advisory: a query that matches no keyword falls back to a full
scan, and small candidate sets are topped up with the general bucket.
"""

from typing import Dict, List, Mapping, Sequence

from ..core.config import CATEGORY_MIN_CANDIDATES, CATEGORY_TOP_N
from .types import DEFAULT_CATEGORY, Entry

CategoryBucket = Dict[str, List[str]]


class CategoryIndex:
    """Classifies queries against a keyword table and maps categories to entry ids."""

    def __init__(self, keyword_table: Mapping[str, Sequence[str]],
                 top_n: int = CATEGORY_TOP_N,
                 min_candidates: int = CATEGORY_MIN_CANDIDATES):
        """
        Args:
            keyword_table: category -> keywords; iteration order breaks score ties
            top_n: number of ranked categories whose buckets are searched
            min_candidates: below this many candidates the general bucket is added
        """
        self.keyword_table = {
            category: [keyword.lower() for keyword in keywords]
            for category, keywords in keyword_table.items()
        }
        self.top_n = top_n
        self.min_candidates = min_candidates

    @property
    def categories(self) -> List[str]:
        return list(self.keyword_table.keys())

    def classify(self, query: str) -> List[str]:
        """
        Rank the categories whose keywords occur in the query.

        Each keyword adds at most 1 to its category's score. Categories with
        score 0 are dropped; ties keep the keyword table order.
        """
        text = query.lower()
        scores = []
        for category, keywords in self.keyword_table.items():
            score = sum(1 for keyword in keywords if keyword and keyword in text)
            if score > 0:
                scores.append((category, score))

        # sorted() is stable
        return [category for category, _ in sorted(scores, key=lambda item: item[1], reverse=True)]

    def build(self, entries: Sequence[Entry]) -> CategoryBucket:
        """Group entry ids by category, in entry order."""
        bucket: CategoryBucket = {}
        for entry in entries:
            category = entry.category.strip() if entry.category and entry.category.strip() else DEFAULT_CATEGORY
            bucket.setdefault(category, []).append(entry.id)
        return bucket

    def relevant_subset(self, query: str, bucket: CategoryBucket) -> List[str]:
        """
        Candidate entry ids for a query.

        No detected category means every entry. Otherwise the union of the
        top ranked categories' buckets, plus the general bucket when that
        union is smaller than ``min_candidates``. Always whole buckets. When
        that still selects nothing, every entry is a candidate.
        Ids come back in bucket order: categories by first appearance in the
        knowledge base, entries in load order within each category.
        """
        all_ids = self._ordered_ids(bucket)
        detected = self.classify(query)
        if not detected:
            return all_ids

        selected = set()
        for category in detected[:self.top_n]:
            selected.update(bucket.get(category, []))

        if len(selected) < self.min_candidates:
            selected.update(bucket.get(DEFAULT_CATEGORY, []))

        # detected categories may have no entries in this knowledge base
        if not selected:
            return all_ids

        return [entry_id for entry_id in all_ids if entry_id in selected]

    @staticmethod
    def _ordered_ids(bucket: CategoryBucket) -> List[str]:
        ordered = []
        for ids in bucket.values():
            ordered.extend(ids)
        return ordered
