"""
Duplicate resolution - match a proposed item against existing catalog entries.

Matching only ranks candidates; choosing one (or creating a variant or a new
entry) is always the user's decision.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from util.logging import logger
from . import config
from .catalog import list_entries
from .classifier import ClassificationResult, Classifier
from .errors import InvalidInput, UpstreamFailure
from .schema import CatalogEntry


@dataclass
class MatchCandidate:
    entry: CatalogEntry
    similarity: int  # 0-100

    @property
    def entry_id(self) -> str:
        return self.entry.id


class EntryMatcher(ABC):
    """Scores how likely an existing entry is the item described by a query."""

    @abstractmethod
    def score(self, query: str, entry: CatalogEntry) -> Optional[int]:
        """Similarity 0-100, or None when the entry is not a candidate."""
        pass

    def match(self, query: str, entries: Sequence[CatalogEntry],
              limit: Optional[int] = None) -> List[MatchCandidate]:
        """Candidates ordered by similarity; input order breaks ties."""
        if limit is None:
            limit = config.MATCH_RESULT_LIMIT
        candidates = []
        for entry in entries:
            similarity = self.score(query, entry)
            if similarity is not None:
                candidates.append(MatchCandidate(entry=entry, similarity=similarity))
        candidates.sort(key=lambda c: c.similarity, reverse=True)
        return candidates[:limit]


class SubstringMatcher(EntryMatcher):
    """Case-insensitive subject comparison: equal scores 100, containment either way 70."""

    EXACT = 100
    CONTAINS = 70

    def score(self, query: str, entry: CatalogEntry) -> Optional[int]:
        wanted = (query or "").strip().lower()
        subject = (entry.subject or "").strip().lower()
        if not wanted or not subject:
            return None
        if wanted == subject:
            return self.EXACT
        if wanted in subject or subject in wanted:
            return self.CONTAINS
        return None


def match_classification(result: ClassificationResult, matcher: Optional[EntryMatcher] = None,
                         limit: Optional[int] = None) -> List[MatchCandidate]:
    """Existing entries resembling a classifier suggestion, best first."""
    if not (result.subject or "").strip():
        return []
    matcher = matcher or SubstringMatcher()
    # list_entries ranks by net score, which breaks similarity ties
    return matcher.match(result.subject, list_entries(), limit)


def suggest_matches(classifier: Classifier, images: List[str],
                    matcher: Optional[EntryMatcher] = None) -> Tuple[ClassificationResult, List[MatchCandidate]]:
    """
    Classify photos of an item and return the suggestion with its duplicate
    candidates. Nothing is written.
    """
    if not images:
        raise InvalidInput("at least one image is required")

    try:
        result = classifier.classify(images)
    except Exception as e:
        logger.error(f"Classifier {classifier.model_name} failed: {e}")
        raise UpstreamFailure(f"Classification failed: {e}") from e

    candidates = match_classification(result, matcher)
    logger.log_operation("matching.suggest", "success",
                         {"subject": result.subject, "candidates": len(candidates)})
    return result, candidates
