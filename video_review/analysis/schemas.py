"""Analysis request/result data models.

Field names are snake_case in Python and camelCase on the wire and on disk.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductContext(CamelModel):
    """Optional product information the reviewer should keep in mind."""
    url: Optional[str] = None
    description: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.url or "").strip() and not (self.description or "").strip()


class RequestConfig(CamelModel):
    """Caller-supplied analysis configuration."""
    category_list: List[str] = Field(default_factory=list)
    product_context: Optional[ProductContext] = None


class CategoryResult(CamelModel):
    """One evaluated category. `score` is None when no valid score exists."""
    model_config = ConfigDict(frozen=True)

    name: str
    score: Optional[int] = None
    feedback: str


class AnalysisResult(CamelModel):
    """The durable, caller-visible analysis report."""
    model_config = ConfigDict(frozen=True)

    id: str
    video_ref: str
    categories: List[CategoryResult]
    overall_score: Optional[int] = None
    score_error: Optional[str] = None
    summary: str
    transcript: str = ""
    video_length: str = "N/A"
    analysis_date: str
    recommendations: List[str] = Field(default_factory=list)
    request_config: RequestConfig
    diagnostics: List[str] = Field(default_factory=list)


@dataclass(frozen=True)
class NormalizedResponse:
    """Model output after per-field validation. Every field is valid or explicitly absent."""
    summary: str
    transcript: str
    categories: Tuple[CategoryResult, ...]
    duration_seconds: Optional[int] = None
    recommendations: Tuple[str, ...] = field(default_factory=tuple)
