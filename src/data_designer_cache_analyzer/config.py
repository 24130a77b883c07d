from __future__ import annotations

from typing import Literal

from pydantic import Field

from data_designer.config.column_configs import SingleColumnConfig


class CacheAnalyzerColumnConfig(SingleColumnConfig):
    """Score prompt-preset columns for provider prompt-cache efficiency.

    Runs five placement and threshold rules against each row's preset and produces a
    numeric score (0-100), a rating band, a severity summary, and recommendations.

    Attributes:
        target_column: Column holding the preset, as a dict or a JSON string.
        provider: Provider to check against. ``auto`` reads the preset's
            ``chat_completion_source`` and falls back to anthropic.
        min_score: Minimum cache score (0-100) for ``is_valid=True``. Defaults to 70
            (the boundary between "needs work" and "good").
        include_recommendations: Include deduplicated recommendation strings in output.
        include_findings: Include full finding payloads in output.
    """

    target_column: str
    provider: Literal["auto", "anthropic", "openai", "google"] = "auto"
    min_score: int = Field(default=70, ge=0, le=100, description="Minimum cache score for is_valid=True")
    include_recommendations: bool = Field(default=True, description="Include recommendation strings in output")
    include_findings: bool = Field(default=False, description="Include raw finding payloads in output")
    column_type: Literal["cache-analyzer"] = "cache-analyzer"

    @staticmethod
    def get_column_emoji() -> str:
        return "\U0001f525"

    @property
    def required_columns(self) -> list[str]:
        return [self.target_column]

    @property
    def side_effect_columns(self) -> list[str]:
        return []
