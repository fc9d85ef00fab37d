from .builder import idempotency_key, key_variants, taxpayer_key_variants
from .index import MatchingIndex

__all__ = [
    "MatchingIndex",
    "idempotency_key",
    "key_variants",
    "taxpayer_key_variants",
]
