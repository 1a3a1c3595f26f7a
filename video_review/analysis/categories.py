"""Catalog of review categories the analysis model knows how to score."""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class CategorySpec:
    category_id: str
    label: str
    guidance: str
    tip: str = ""


CATALOG: Dict[str, CategorySpec] = {
    spec.category_id: spec
    for spec in [
        CategorySpec(
            "product_relevance",
            "Product Relevance",
            "How clearly the video showcases the product's key features and benefits.",
            "Increase focus on showcasing product benefits and features",
        ),
        CategorySpec(
            "visual_quality",
            "Visual Quality",
            "Lighting, focus, framing and overall image clarity.",
            "Improve lighting and camera positioning for clearer visuals",
        ),
        CategorySpec(
            "audio_quality",
            "Audio Quality",
            "Voice clarity, background noise, echo and consistent volume.",
            "Use an external microphone to improve audio clarity",
        ),
        CategorySpec(
            "content_engagement",
            "Content Engagement",
            "Hook, storyline and pacing that keep viewers watching.",
            "Create a more compelling storyline to maintain viewer interest",
        ),
        CategorySpec(
            "talking_head_presence",
            "Talking Head Presence",
            "How often and how naturally the reviewer appears on camera.",
            "Increase on-camera presence to build viewer connection",
        ),
        CategorySpec(
            "product_visibility",
            "Product Visibility",
            "Whether the product stays in frame with its details visible.",
            "Ensure the product is clearly visible in all scenes",
        ),
        CategorySpec(
            "use_case_demonstration",
            "Use Case Demonstration",
            "Practical demonstrations of the product in real-life scenarios.",
            "Show the product being used in realistic scenarios",
        ),
        CategorySpec(
            "unboxing_first_impressions",
            "Unboxing or First Impressions",
            "Authentic first reactions and the packaging experience.",
            "Capture genuine first impressions while unboxing",
        ),
        CategorySpec(
            "brand_mention",
            "Brand Mention",
            "Whether the brand name is clearly mentioned.",
            "Mention the brand name clearly and more than once",
        ),
        CategorySpec(
            "product_mention",
            "Product Mention",
            "Whether the specific product name or model is clearly stated.",
            "State the product name and model clearly",
        ),
        CategorySpec(
            "reviewer_sentiment",
            "Reviewer Sentiment",
            "Authenticity, enthusiasm and balance of the reviewer's opinions.",
            "Share balanced, genuine opinions about the product",
        ),
        CategorySpec(
            "call_to_action",
            "Call to Action",
            "A clear, compelling next step for the viewer.",
            "Add a specific, compelling call to action at the end",
        ),
    ]
}

DEFAULT_CATEGORIES: Tuple[str, ...] = (
    "product_relevance",
    "visual_quality",
    "audio_quality",
    "content_engagement",
)

_GENERIC_GUIDANCE = "Evaluate this aspect of the video on its own merits."


def normalize_key(name: str) -> str:
    """'Visual Quality' / 'visual-quality' / 'VISUAL_QUALITY' -> 'visual_quality'."""
    return re.sub(r"[\s\-]+", "_", name.strip().lower())


def label_for(category_id: str) -> str:
    spec = CATALOG.get(category_id)
    if spec:
        return spec.label
    return " ".join(word.capitalize() for word in category_id.split("_") if word)


def guidance_for(category_id: str) -> str:
    spec = CATALOG.get(category_id)
    return spec.guidance if spec else _GENERIC_GUIDANCE


def tip_for(category_id: str) -> Optional[str]:
    spec = CATALOG.get(category_id)
    if spec and spec.tip:
        return spec.tip
    return None


def lookup_keys(category_id: str) -> List[str]:
    """Keys a model-returned entry may use to refer to this category."""
    keys = [normalize_key(category_id), normalize_key(label_for(category_id))]
    return list(dict.fromkeys(keys))
