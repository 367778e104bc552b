"""
Data models for the translation pipeline.

Every record that crosses a component boundary or is persisted in a
recovery session lives here. Persisted records provide to_dict/from_dict
so that a session file can be written with json and read back unchanged.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class TranslationPhase(Enum):
    """Pipeline phases, in the only order they may be entered."""
    INITIALIZING = "initializing"
    EXTRACTING = "extracting"
    PREPARING = "preparing"
    TRANSLATING = "translating"
    VALIDATING = "validating"
    APPLYING = "applying"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def order(self) -> int:
        return _PHASE_ORDER.index(self)


_PHASE_ORDER = list(TranslationPhase)


class QualityTier(Enum):
    """Requested translation quality. Only PROFESSIONAL runs quality checks."""
    DRAFT = "draft"
    STANDARD = "standard"
    PROFESSIONAL = "professional"


class IssueType(Enum):
    UNTRANSLATED = "untranslated"
    LENGTH_MISMATCH = "length_mismatch"
    FORMAT_MISMATCH = "format_mismatch"
    PLACEHOLDER_MISMATCH = "placeholder_mismatch"


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


# Error codes attached to FragmentError
TRANSLATION_FAILED = "TRANSLATION_FAILED"
BATCH_FAILED = "BATCH_FAILED"
BATCH_COUNT_MISMATCH = "BATCH_COUNT_MISMATCH"


@dataclass
class Fragment:
    """
    One unit of extracted source text.

    Attributes:
        id: Stable identifier assigned by the document adapter
        text: The text content (may repeat across fragments)
        metadata: Adapter-specific layout data (page, font, position); opaque here
    """
    id: str
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def with_text(self, text: str) -> 'Fragment':
        """Copy of this fragment carrying a different text."""
        return Fragment(id=self.id, text=text, metadata=dict(self.metadata))

    def to_dict(self) -> Dict[str, Any]:
        data = {'id': self.id, 'text': self.text}
        if self.metadata:
            data['metadata'] = self.metadata
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Fragment':
        return cls(
            id=data['id'],
            text=data['text'],
            metadata=data.get('metadata') or {}
        )


@dataclass
class CanonicalItem:
    """A distinct trimmed text shared by one or more fragments."""
    text: str
    fragment_ids: List[str]


@dataclass
class Batch:
    """A bounded group of canonical items sent together to the provider."""
    id: str
    items: List[CanonicalItem]
    token_count: int

    @property
    def texts(self) -> List[str]:
        return [item.text for item in self.items]


@dataclass
class ProgressState:
    """
    Snapshot of pipeline progress.

    Attributes:
        current: Units completed so far
        total: Units expected in total
        phase: Current pipeline phase
        percentage: current / total * 100 (0 when total is 0)
        message: Optional human-readable status
        estimated_time_remaining: ETA in milliseconds, None until current > 0
    """
    current: int
    total: int
    phase: TranslationPhase
    percentage: float = 0.0
    message: Optional[str] = None
    estimated_time_remaining: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'current': self.current,
            'total': self.total,
            'phase': self.phase.value,
            'percentage': self.percentage,
        }
        if self.message is not None:
            data['message'] = self.message
        if self.estimated_time_remaining is not None:
            data['estimated_time_remaining'] = self.estimated_time_remaining
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProgressState':
        return cls(
            current=data['current'],
            total=data['total'],
            phase=TranslationPhase(data['phase']),
            percentage=data.get('percentage', 0.0),
            message=data.get('message'),
            estimated_time_remaining=data.get('estimated_time_remaining'),
        )


@dataclass
class QualityIssue:
    type: IssueType
    severity: Severity
    fragment_id: str
    description: str
    original: str
    translated: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'severity': self.severity.value,
            'fragment_id': self.fragment_id,
            'description': self.description,
            'original': self.original,
            'translated': self.translated,
        }


@dataclass
class QualityResult:
    passed: bool
    issues: List[QualityIssue]
    score: int


@dataclass
class FragmentError:
    """A per-fragment failure reported in the result metadata."""
    fragment_id: str
    error: str
    code: str = TRANSLATION_FAILED
    retryable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'fragment_id': self.fragment_id,
            'error': self.error,
            'code': self.code,
            'retryable': self.retryable,
        }


@dataclass
class CostBreakdown:
    provider: str
    model: str
    price_per_input_token: float
    price_per_output_token: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'provider': self.provider,
            'model': self.model,
            'price_per_input_token': self.price_per_input_token,
            'price_per_output_token': self.price_per_output_token,
        }


@dataclass
class Cost:
    """
    Token-based cost estimate.

    total_cost_minor_units is expressed in cents of ``currency``; it is a
    float because per-token prices are fractions of a cent.
    """
    input_tokens: int = 0
    output_tokens: int = 0
    total_cost_minor_units: float = 0.0
    currency: str = "USD"
    breakdown: Optional[CostBreakdown] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'input_tokens': self.input_tokens,
            'output_tokens': self.output_tokens,
            'total_cost_minor_units': self.total_cost_minor_units,
            'currency': self.currency,
        }
        if self.breakdown:
            data['breakdown'] = self.breakdown.to_dict()
        return data


@dataclass
class TranslationOptions:
    """
    Per-request options.

    ``on_progress`` is a runtime observer and is never persisted.
    Batching overrides left as None fall back to the service configuration.
    """
    quality: QualityTier = QualityTier.STANDARD
    preserve_formatting: bool = False
    glossary: Dict[str, str] = field(default_factory=dict)
    batch_size: Optional[int] = None
    max_tokens_per_batch: Optional[int] = None
    concurrency: Optional[int] = None
    inter_batch_delay: Optional[float] = None
    max_retries: Optional[int] = None
    timeout: Optional[int] = None
    retry_on_quality_error: bool = False
    on_progress: Optional[Callable[[ProgressState], None]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'quality': self.quality.value,
            'preserve_formatting': self.preserve_formatting,
            'glossary': self.glossary,
            'batch_size': self.batch_size,
            'max_tokens_per_batch': self.max_tokens_per_batch,
            'concurrency': self.concurrency,
            'inter_batch_delay': self.inter_batch_delay,
            'max_retries': self.max_retries,
            'timeout': self.timeout,
            'retry_on_quality_error': self.retry_on_quality_error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TranslationOptions':
        return cls(
            quality=QualityTier(data.get('quality', QualityTier.STANDARD.value)),
            preserve_formatting=data.get('preserve_formatting', False),
            glossary=data.get('glossary') or {},
            batch_size=data.get('batch_size'),
            max_tokens_per_batch=data.get('max_tokens_per_batch'),
            concurrency=data.get('concurrency'),
            inter_batch_delay=data.get('inter_batch_delay'),
            max_retries=data.get('max_retries'),
            timeout=data.get('timeout'),
            retry_on_quality_error=data.get('retry_on_quality_error', False),
        )


@dataclass
class TranslationRequest:
    fragments: Dict[str, Fragment]
    source_lang: str
    target_lang: str
    provider: str = "openai"
    options: TranslationOptions = field(default_factory=TranslationOptions)

    def with_fragments(self, fragments: Dict[str, Fragment]) -> 'TranslationRequest':
        """Same request restricted to another fragment set."""
        return TranslationRequest(
            fragments=fragments,
            source_lang=self.source_lang,
            target_lang=self.target_lang,
            provider=self.provider,
            options=self.options,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'fragments': {fid: frag.to_dict() for fid, frag in self.fragments.items()},
            'source_lang': self.source_lang,
            'target_lang': self.target_lang,
            'provider': self.provider,
            'options': self.options.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TranslationRequest':
        return cls(
            fragments={
                fid: Fragment.from_dict(frag) for fid, frag in data['fragments'].items()
            },
            source_lang=data['source_lang'],
            target_lang=data['target_lang'],
            provider=data.get('provider', 'openai'),
            options=TranslationOptions.from_dict(data.get('options') or {}),
        )


@dataclass
class ResultMetadata:
    total_count: int
    translated_count: int
    failed_count: int
    execution_time_ms: float
    cost: Cost = field(default_factory=Cost)
    errors: List[FragmentError] = field(default_factory=list)
    quality_issues: List[QualityIssue] = field(default_factory=list)
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_count': self.total_count,
            'translated_count': self.translated_count,
            'failed_count': self.failed_count,
            'execution_time_ms': self.execution_time_ms,
            'cost': self.cost.to_dict(),
            'errors': [e.to_dict() for e in self.errors],
            'quality_issues': [i.to_dict() for i in self.quality_issues],
            'session_id': self.session_id,
        }


@dataclass
class TranslationResult:
    translated_fragments: Dict[str, Fragment]
    metadata: ResultMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {
            'translated_fragments': {
                fid: frag.to_dict() for fid, frag in self.translated_fragments.items()
            },
            'metadata': self.metadata.to_dict(),
        }


@dataclass
class RecoverySession:
    """
    Durable record of one translation run.

    The id lists are append-only: ids are added as batches complete and are
    never removed, so a session file always describes a prefix of the run.
    """
    id: str
    timestamp: int  # epoch milliseconds of the last mutation
    original_request: TranslationRequest
    progress: ProgressState
    completed_fragment_ids: List[str] = field(default_factory=list)
    failed_fragment_ids: List[str] = field(default_factory=list)
    translated_fragments: Dict[str, Fragment] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'timestamp': self.timestamp,
            'original_request': self.original_request.to_dict(),
            'progress': self.progress.to_dict(),
            'completed_fragment_ids': list(self.completed_fragment_ids),
            'failed_fragment_ids': list(self.failed_fragment_ids),
            'translated_fragments': {
                fid: frag.to_dict() for fid, frag in self.translated_fragments.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RecoverySession':
        return cls(
            id=data['id'],
            timestamp=data['timestamp'],
            original_request=TranslationRequest.from_dict(data['original_request']),
            progress=ProgressState.from_dict(data['progress']),
            completed_fragment_ids=list(data.get('completed_fragment_ids', [])),
            failed_fragment_ids=list(data.get('failed_fragment_ids', [])),
            translated_fragments={
                fid: Fragment.from_dict(frag)
                for fid, frag in (data.get('translated_fragments') or {}).items()
            },
        )


@dataclass
class SessionSummary:
    id: str
    timestamp: int
    progress: float  # percentage
