"""
Token-bounded batch construction.

Canonical items are accumulated greedily into batches that respect both an
item-count limit and an estimated token budget. An item is never split: a
single item larger than the budget travels alone in its own batch.
"""
import math
from typing import Dict, List

from pdf_translator.config import CHARS_PER_TOKEN
from pdf_translator.core.exceptions import ConfigurationError
from pdf_translator.core.models import Batch, CanonicalItem


def estimate_tokens(text: str) -> int:
    """
    Rough token estimate: one token per four bytes of UTF-8.

    Args:
        text: Input text

    Returns:
        Estimated number of tokens (0 for an empty string)
    """
    if not text:
        return 0
    return math.ceil(len(text.encode('utf-8')) / CHARS_PER_TOKEN)


def create_batches(
    items: List[CanonicalItem],
    max_batch_size: int,
    max_tokens_per_batch: int
) -> List[Batch]:
    """
    Group canonical items into batches.

    Before adding an item, the running batch is closed when it is non-empty
    and adding the item would exceed either limit. The trailing batch is
    flushed if non-empty. Batch ids are ``batch-0``, ``batch-1``, ...

    Args:
        items: Canonical items in the order they should be translated
        max_batch_size: Maximum items per batch (>= 1)
        max_tokens_per_batch: Token budget per batch (>= 1)

    Returns:
        List of non-empty batches covering every item exactly once

    Raises:
        ConfigurationError: If a limit is not positive
    """
    if max_batch_size < 1:
        raise ConfigurationError(f"max_batch_size must be >= 1, got {max_batch_size}")
    if max_tokens_per_batch < 1:
        raise ConfigurationError(
            f"max_tokens_per_batch must be >= 1, got {max_tokens_per_batch}"
        )

    batches: List[Batch] = []
    current_items: List[CanonicalItem] = []
    current_tokens = 0

    def flush():
        batches.append(Batch(
            id=f"batch-{len(batches)}",
            items=current_items,
            token_count=current_tokens
        ))

    for item in items:
        item_tokens = estimate_tokens(item.text)

        if current_items and (
            len(current_items) + 1 > max_batch_size
            or current_tokens + item_tokens > max_tokens_per_batch
        ):
            flush()
            current_items = []
            current_tokens = 0

        current_items.append(item)
        current_tokens += item_tokens

    if current_items:
        flush()

    return batches


def get_batch_stats(batches: List[Batch]) -> Dict[str, float]:
    """
    Summary statistics for a list of batches.

    Returns:
        Dictionary with batch count, item count and token figures
    """
    if not batches:
        return {
            'total_batches': 0,
            'total_items': 0,
            'total_tokens': 0,
            'avg_tokens': 0,
            'max_tokens': 0,
        }

    token_counts = [b.token_count for b in batches]
    return {
        'total_batches': len(batches),
        'total_items': sum(len(b.items) for b in batches),
        'total_tokens': sum(token_counts),
        'avg_tokens': sum(token_counts) / len(batches),
        'max_tokens': max(token_counts),
    }
