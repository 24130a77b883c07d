from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from data_designer.engine.column_generators.generators.base import ColumnGeneratorFullColumn

from data_designer_cache_analyzer.config import CacheAnalyzerColumnConfig
from data_designer_cache_analyzer.core import AnalysisOptions, analyze
from data_designer_cache_analyzer.sources import coerce_preset, resolve_provider

if TYPE_CHECKING:
    import pandas as pd

logger = logging.getLogger(__name__)


def _deduplicate(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def score_preset(value: Any, config: CacheAnalyzerColumnConfig) -> dict:
    """Build the output cell for one row's preset value."""
    preset = coerce_preset(value)
    if preset is None:
        output: dict = {
            "is_valid": False,
            "cache_score": None,
            "cache_band": "no-preset",
            "cache_summary": None,
        }
        if config.include_recommendations:
            output["cache_recommendations"] = []
        if config.include_findings:
            output["cache_findings"] = []
        return output

    provider = resolve_provider(config.provider, preset)
    analysis = analyze(preset, AnalysisOptions(provider=provider))
    output = {
        "is_valid": analysis["score"] >= config.min_score,
        "cache_score": analysis["score"],
        "cache_band": analysis["band"],
        "cache_summary": analysis["summary"],
    }
    if config.include_recommendations:
        output["cache_recommendations"] = _deduplicate([f["recommendation"] for f in analysis["findings"]])
    if config.include_findings:
        output["cache_findings"] = analysis["findings"]
    return output


class CacheAnalyzerColumnGenerator(ColumnGeneratorFullColumn[CacheAnalyzerColumnConfig]):
    """Column generator that scores prompt presets for prompt-cache efficiency."""

    def generate(self, data: pd.DataFrame) -> pd.DataFrame:
        logger.info(f"\U0001f525 Scoring column {self.config.name!r} for prompt-cache efficiency")
        logger.info(f"   target column: {self.config.target_column}")
        logger.info(f"   provider: {self.config.provider}")
        logger.info(f"   min_score: {self.config.min_score}")

        results = [score_preset(value, self.config) for value in data[self.config.target_column]]
        skipped = sum(1 for r in results if r["cache_score"] is None)
        if skipped:
            logger.warning(f"   {skipped} row(s) had no usable preset")

        data = data.copy()
        data[self.config.name] = results
        return data
