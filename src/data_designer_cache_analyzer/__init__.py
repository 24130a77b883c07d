# SPDX-License-Identifier: Apache-2.0
"""Cache Analyzer plugin for NeMo Data Designer.

Adds a ``cache-analyzer`` column type that scores chat-completion prompt presets
for provider-side prompt caching: dynamic macros early in the prompt order,
volatile entries in front of stable ones, stable prefixes below the provider's
caching minimum, shallow in-chat injections, and provider quirks. No LLM calls.

Usage::

    from data_designer_cache_analyzer import CacheAnalyzerColumnConfig

    builder.add_column(CacheAnalyzerColumnConfig(
        name="cache_check",
        target_column="preset",
        provider="anthropic",
        min_score=70,
    ))

The engine is also usable on its own::

    from data_designer_cache_analyzer import analyze

    result = analyze(preset, {"provider": "openai"})
"""

from data_designer_cache_analyzer.config import CacheAnalyzerColumnConfig
from data_designer_cache_analyzer.core import (
    AnalysisOptions,
    Finding,
    Hyperparameters,
    analyze,
    calculate_score,
    check_injection_depth,
    check_macro_placement,
    check_prompt_ordering,
    check_provider_specific,
    check_token_thresholds,
    estimate_tokens,
    is_volatile,
)

__all__ = [
    "AnalysisOptions",
    "CacheAnalyzerColumnConfig",
    "Finding",
    "Hyperparameters",
    "analyze",
    "calculate_score",
    "check_injection_depth",
    "check_macro_placement",
    "check_prompt_ordering",
    "check_provider_specific",
    "check_token_thresholds",
    "estimate_tokens",
    "is_volatile",
]
