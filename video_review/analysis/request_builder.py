"""Builds the outbound analysis request (category list + product context + prompt).

Pure functions only: the same inputs always produce the same request.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from video_review.analysis.categories import DEFAULT_CATEGORIES, guidance_for, label_for
from video_review.analysis.schemas import ProductContext, RequestConfig

ELLIPSIS = "..."
NO_CONTEXT = "No product context provided."

_RESPONSE_FORMAT = """{
  "summary": "brief overall assessment",
  "transcript": "verbatim transcript of the spoken audio, empty if none",
  "durationSeconds": integer length of the video in seconds,
  "categories": [
    {
      "name": "category id exactly as listed above",
      "score": integer from 1 to 10,
      "feedback": "detailed feedback"
    }
  ],
  "recommendations": [
    "specific improvement suggestion"
  ]
}"""


@dataclass(frozen=True)
class AnalysisRequest:
    """Everything the analyzer needs for one call."""
    video_ref: str
    categories: Tuple[str, ...]
    product_url: Optional[str]
    product_description: Optional[str]
    prompt: str

    def effective_config(self) -> RequestConfig:
        """The configuration actually used, kept on the result for auditability."""
        context = None
        if self.product_url or self.product_description:
            context = ProductContext(url=self.product_url, description=self.product_description)
        return RequestConfig(category_list=list(self.categories), product_context=context)


def truncate(text: str, max_chars: int) -> str:
    """Cap `text` at `max_chars`, marking the cut with a visible ellipsis."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + ELLIPSIS


def resolve_categories(category_list: Optional[List[str]]) -> Tuple[str, ...]:
    """Strip, drop blanks and duplicates; fall back to the default list when empty."""
    cleaned = [name.strip() for name in (category_list or []) if name and name.strip()]
    if not cleaned:
        return DEFAULT_CATEGORIES
    return tuple(dict.fromkeys(cleaned))


def build_request(
    video_ref: str,
    config: Optional[RequestConfig] = None,
    max_context_chars: int = 500,
) -> AnalysisRequest:
    """Build the analysis request for one video."""
    config = config or RequestConfig()
    categories = resolve_categories(config.category_list)

    url = description = None
    context = config.product_context
    if context is not None and not context.is_empty():
        url = truncate(context.url.strip(), max_context_chars) if (context.url or "").strip() else None
        description = (
            truncate(context.description.strip(), max_context_chars)
            if (context.description or "").strip()
            else None
        )

    prompt = _compose_prompt(categories, url, description)
    return AnalysisRequest(
        video_ref=video_ref,
        categories=categories,
        product_url=url,
        product_description=description,
        prompt=prompt,
    )


def _compose_prompt(
    categories: Tuple[str, ...],
    url: Optional[str],
    description: Optional[str],
) -> str:
    lines = [
        "You are a professional video content reviewer. Watch the attached video "
        "and evaluate it for a product review campaign.",
        "",
        "Product context:",
    ]
    if url or description:
        if description:
            lines.append(f"- Description: {description}")
        if url:
            lines.append(f"- Product page: {url}")
    else:
        lines.append(f"- {NO_CONTEXT}")

    lines += ["", "Score each of these categories from 1 (poor) to 10 (excellent):"]
    for category_id in categories:
        lines.append(f"- {category_id} ({label_for(category_id)}): {guidance_for(category_id)}")

    lines += [
        "",
        "Respond with a single JSON object in exactly this format:",
        _RESPONSE_FORMAT,
        "",
        "Include one entry in \"categories\" for every category listed above, in the same order.",
    ]
    return "\n".join(lines)
