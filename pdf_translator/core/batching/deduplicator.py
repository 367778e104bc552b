"""
Fragment deduplication.

Documents repeat themselves: running headers, footers, page numbers and
table labels show up on every page. Each distinct trimmed text is sent to
the provider once and its translation is copied back to every fragment
that carried it.
"""
from typing import Dict, Iterable, List, Tuple

from pdf_translator.core.models import CanonicalItem, Fragment


def deduplicate(
    fragments: Iterable[Fragment]
) -> Tuple[Dict[str, List[str]], Dict[str, str]]:
    """
    Group fragments by their trimmed text.

    Fragments that are empty after trimming are skipped entirely: they appear
    in neither returned mapping. Comparison is exact, so case and punctuation
    differences produce separate groups.

    Args:
        fragments: Fragments in document order

    Returns:
        (canonical, fragment_to_text) where canonical maps each distinct text
        to the ids sharing it (first-seen order) and fragment_to_text maps each
        kept fragment id to its canonical text
    """
    canonical: Dict[str, List[str]] = {}
    fragment_to_text: Dict[str, str] = {}

    for fragment in fragments:
        text = fragment.text.strip()
        if not text:
            continue
        canonical.setdefault(text, []).append(fragment.id)
        fragment_to_text[fragment.id] = text

    return canonical, fragment_to_text


def to_canonical_items(canonical: Dict[str, List[str]]) -> List[CanonicalItem]:
    """Canonical items in first-seen order (dicts keep insertion order)."""
    return [
        CanonicalItem(text=text, fragment_ids=list(ids))
        for text, ids in canonical.items()
    ]


def redistribute(
    translations: Dict[str, str],
    fragment_to_text: Dict[str, str],
    original_fragments: Dict[str, Fragment]
) -> Dict[str, Fragment]:
    """
    Copy canonical translations back onto every fragment.

    Each output fragment keeps the id and metadata of the original and
    carries the translated text. Fragments whose canonical text has no
    translation are left out.

    Args:
        translations: Canonical text -> translated text
        fragment_to_text: Fragment id -> canonical text (from deduplicate)
        original_fragments: Fragment id -> original fragment

    Returns:
        Fragment id -> translated fragment
    """
    result: Dict[str, Fragment] = {}
    for fragment_id, text in fragment_to_text.items():
        translated = translations.get(text)
        if translated is None:
            continue
        original = original_fragments.get(fragment_id)
        if original is None:
            continue
        result[fragment_id] = original.with_text(translated)
    return result
