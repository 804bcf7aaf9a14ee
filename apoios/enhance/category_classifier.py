"""
Classify program text into one of the six support categories.
"""

from typing import Dict, Iterable, Mapping, Optional, Tuple

from apoios.core.config import DEFAULT_CATEGORY_PRECEDENCE
from apoios.core.domain_models import SupportCategory
from apoios.core.keywords import SUPPORT_CATEGORY_KEYWORDS
from apoios.core.utils import normalize_text
from apoios.enhance.relevance import normalize_keywords


class CategoryClassifier:
    """
    Keyword-count classifier with an explicit tie-break order.

    Each category scores one point per distinct keyword phrase found in the
    normalized text. The highest score wins; a score of zero everywhere means
    OUTRO. When categories tie, the one listed first in ``precedence`` wins.
    """

    def __init__(
        self,
        keywords: Mapping[SupportCategory, Tuple[str, ...]] = SUPPORT_CATEGORY_KEYWORDS,
        precedence: Iterable[SupportCategory] = DEFAULT_CATEGORY_PRECEDENCE,
    ):
        self.keywords = {
            category: normalize_keywords(tuple(phrases))
            for category, phrases in keywords.items()
        }
        self.precedence = tuple(precedence)

        missing = [c for c in self.keywords if c not in self.precedence]
        if missing:
            # Categories without an explicit rank go last, in table order
            self.precedence = self.precedence + tuple(missing)

    def score(self, text: Optional[str]) -> Dict[SupportCategory, int]:
        """Per-category keyword hit counts, in precedence order."""
        normalized = normalize_text(text)
        return {
            category: sum(1 for phrase in self.keywords.get(category, ()) if phrase in normalized)
            for category in self.precedence
        }

    def classify(self, text: Optional[str]) -> SupportCategory:
        """
        Pick the best matching support category.

        Examples:
            >>> CategoryClassifier().classify("painéis solares e fotovoltaico")
            <SupportCategory.SOLAR: 'SOLAR'>
            >>> CategoryClassifier().classify("apoio à natalidade")
            <SupportCategory.OUTRO: 'OUTRO'>
        """
        best = SupportCategory.OUTRO
        best_score = 0
        for category, hits in self.score(text).items():
            # Strictly greater keeps the earlier category on ties
            if hits > best_score:
                best, best_score = category, hits
        return best
