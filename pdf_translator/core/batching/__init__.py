"""
Batching module for the translation pipeline.

Collapses duplicate fragment texts and groups the distinct texts into
batches bounded by item count and estimated tokens.
"""
from pdf_translator.core.batching.deduplicator import (
    deduplicate,
    to_canonical_items,
    redistribute,
)
from pdf_translator.core.batching.batch_builder import (
    estimate_tokens,
    create_batches,
    get_batch_stats,
)

__all__ = [
    'deduplicate',
    'to_canonical_items',
    'redistribute',
    'estimate_tokens',
    'create_batches',
    'get_batch_stats',
]
