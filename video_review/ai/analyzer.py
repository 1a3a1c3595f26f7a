"""Analyzer interface: the external multimodal model call."""

from abc import ABC, abstractmethod

from video_review.analysis.request_builder import AnalysisRequest


class Analyzer(ABC):
    """Sends one video + request to an analysis model and returns its raw text."""

    @abstractmethod
    async def analyze(self, video_ref: str, request: AnalysisRequest) -> str:
        """Return the model's raw response text.

        Raises:
            ContentBlockedError: the model refused under its safety policy.
            ExternalCallError: transport or service failure, or an empty response.
        """
        ...
