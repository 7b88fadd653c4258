"""
Data models for extraction outputs, quality scores and consensus results.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class QualityScores:
    """Five 0-100 sub-scores plus the weighted overall score.

    A value of None means "no quality data" (the output did not parse),
    which is distinct from a score of 0.
    """
    syntax: Optional[int] = None
    structural: Optional[int] = None
    completeness: Optional[int] = None
    content: Optional[int] = None
    consensus: Optional[int] = None
    overall: Optional[int] = None


@dataclass
class ValidationError:
    """A single schema violation."""
    message: str
    line: Optional[int] = None
    path: Optional[str] = None
    keyword: Optional[str] = None


@dataclass
class ValidationResult:
    """Outcome of validating one output against a JSON Schema."""
    valid: bool
    errors: List[ValidationError] = field(default_factory=list)


@dataclass
class ModelOutput:
    """One model's response to one extraction request."""
    model: str
    raw_text: str
    decoded_value: Any = None
    scores: QualityScores = field(default_factory=QualityScores)
    validation: Optional[ValidationResult] = None
    parse_error: Optional[str] = None
    error_message: Optional[str] = None
    usage: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_qualifying(self) -> bool:
        return self.decoded_value is not None


@dataclass
class AgreedField:
    field: str
    agreement_percent: int


@dataclass
class DisputedField:
    field: str
    present_in: List[str]


@dataclass
class UniqueField:
    field: str
    model: str


@dataclass
class FieldConsensus:
    """Partition of every field path into agreed, disputed and unique."""
    agreed_fields: List[AgreedField] = field(default_factory=list)
    disputed_fields: List[DisputedField] = field(default_factory=list)
    unique_fields: List[UniqueField] = field(default_factory=list)
    total_unique_fields: int = 0


@dataclass
class HighConfidenceValue:
    field: str
    value: Any
    agreement_percent: int
    models_agreed: List[str]


@dataclass
class ValueGroup:
    value: Any
    models: List[str]


@dataclass
class LowConfidenceValue:
    field: str
    values: List[ValueGroup]
    disagreement_reason: str


@dataclass
class ValueConsensus:
    high_confidence: List[HighConfidenceValue] = field(default_factory=list)
    low_confidence: List[LowConfidenceValue] = field(default_factory=list)


@dataclass
class TopModel:
    model: str
    score: int
    reason: str
    strengths: List[str]


@dataclass
class Recommendations:
    best_model: str
    best_score: int
    top_models: List[TopModel] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    summary: str = ""


@dataclass
class ConsensusAnalysis:
    """Cross-model comparison for one extraction request."""
    field_consensus: FieldConsensus
    value_consensus: ValueConsensus
    recommendations: Recommendations


@dataclass
class ModelCompletion:
    """Text completion returned by the model gateway."""
    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    latency_ms: float = 0.0


@dataclass
class ExtractionRun:
    """All outputs and the consensus analysis for one request."""
    request_id: str
    output_format: str
    models: List[str]
    outputs: List[ModelOutput]
    analysis: ConsensusAnalysis
    evaluated_at: str
    schema_valid: Optional[bool] = None
    schema: Optional[Dict[str, Any]] = None


@dataclass
class ModelSummary:
    """Aggregated performance of one model across extraction runs."""
    model: str
    attempts: int
    success_count: int
    failure_count: int
    success_rate: float
    json_validity_rate: float
    schema_validity_rate: Optional[float] = None
    avg_overall_score: Optional[float] = None
    avg_null_count: Optional[float] = None
    total_null_count: int = 0
    avg_latency_ms: Optional[float] = None
    total_cost_usd: float = 0.0


@dataclass
class AttributeFailure:
    """Schema failures for one attribute path across models."""
    attribute_path: str
    missing_count: int = 0
    type_mismatch_count: int = 0
    format_violation_count: int = 0
    affected_models: List[str] = field(default_factory=list)
    pattern: str = ""

    @property
    def total_failures(self) -> int:
        return self.missing_count + self.type_mismatch_count + self.format_violation_count


@dataclass
class PromptGuidance:
    """Three-level verdict for one output and what to add to the prompt."""
    model: str
    json_valid: bool
    attributes_valid: bool
    formats_valid: bool
    missing_attributes: List[str] = field(default_factory=list)
    unexpected_attributes: List[str] = field(default_factory=list)
    guidance: List[str] = field(default_factory=list)

    @property
    def validation_passed(self) -> bool:
        return self.json_valid and self.attributes_valid and self.formats_valid


@dataclass
class RequestSummary:
    """How many models passed validation for one request."""
    request_id: str
    models_passed: int
    models_total: int
    status: str


def to_dict(obj: Any) -> Any:
    """Convert result dataclasses (nested in dicts/lists) to plain JSON-ready values."""
    if hasattr(obj, "__dataclass_fields__"):
        return {k: to_dict(v) for k, v in asdict(obj).items()}
    elif isinstance(obj, dict):
        return {k: to_dict(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [to_dict(v) for v in obj]
    return obj
