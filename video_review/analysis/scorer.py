"""Score aggregation: combines validated category scores into an overall score."""

import math
from typing import List, Optional, Sequence, Tuple

from video_review.analysis.categories import tip_for
from video_review.analysis.schemas import CategoryResult
from video_review.analysis.validator import MAX_SCORE, MIN_SCORE

NO_VALID_SCORES = "No valid category scores were available to compute an overall score."

# Categories scoring below this get a catalog tip when the model gave no recommendations
LOW_SCORE_THRESHOLD = 6


def aggregate_scores(categories: Sequence[CategoryResult]) -> Tuple[Optional[int], Optional[str]]:
    """Compute the overall score as the round-half-up mean of valid category scores.

    Categories without a valid score are left out of the mean.

    Returns:
        (overall_score, None) when at least one valid score exists,
        (None, NO_VALID_SCORES) otherwise. Never raises on missing data.
    """
    scores = [c.score for c in categories if _is_valid(c.score)]
    if not scores:
        return None, NO_VALID_SCORES

    mean = sum(scores) / len(scores)
    return math.floor(mean + 0.5), None


def derive_recommendations(categories: Sequence[CategoryResult]) -> List[str]:
    """Fallback recommendations from low-scoring categories, in category order."""
    tips = []
    for category in categories:
        if _is_valid(category.score) and category.score < LOW_SCORE_THRESHOLD:
            tip = tip_for(category.name)
            if tip:
                tips.append(tip)
    return list(dict.fromkeys(tips))


def format_video_length(seconds: Optional[int]) -> str:
    """Render a duration as M:SS or H:MM:SS; "N/A" when unknown."""
    if seconds is None:
        return "N/A"
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def _is_valid(score: Optional[int]) -> bool:
    return isinstance(score, int) and not isinstance(score, bool) and MIN_SCORE <= score <= MAX_SCORE
