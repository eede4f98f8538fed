from pattern_scanner.suppression.matcher import SuppressionMatcher, text_similarity
from pattern_scanner.suppression.store import SuppressionStore, SuppressionStoreError

__all__ = [
    "SuppressionMatcher",
    "SuppressionStore",
    "SuppressionStoreError",
    "text_similarity",
]
