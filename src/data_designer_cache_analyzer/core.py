# Prompt-cache linter for chat-completion presets.
#
# Runs five independent rules over a preset's effective prompt order and returns
# a numeric score (0-100), structured findings, and a per-severity summary.

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import partial, reduce
from typing import Any, Callable, Literal

logger = logging.getLogger(__name__)

Severity = Literal["critical", "warning", "info"]
Tokenizer = Callable[[str], int]

SEVERITIES: tuple[Severity, ...] = ("critical", "warning", "info")
ALL = "all"

# ---------------------------------------------------------------------------
# Hyperparameters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Hyperparameters:
    """Tunable thresholds, penalties, and provider limits used by the analyzer."""

    volatile_identifiers: frozenset[str] = field(
        default_factory=lambda: frozenset({"chatHistory", "dialogueExamples"})
    )
    provider_thresholds: Mapping[str, int] = field(
        default_factory=lambda: {"anthropic": 1024, "openai": 1024, "google": 4096}
    )
    default_provider: str = "anthropic"

    chars_per_token: int = 4

    early_position_fraction: float = 0.4
    min_stable_after_volatile: int = 2
    near_threshold_ratio: float = 0.9
    shallow_injection_depth: int = 1
    safe_injection_depth: int = 4
    openai_alignment_block: int = 128

    critical_penalty: int = 20
    warning_penalty: int = 10
    info_penalty: int = 3
    score_min: int = 0
    score_max: int = 100
    band_excellent_min: int = 90
    band_good_min: int = 70
    band_needs_work_min: int = 50

    def threshold_for(self, provider: str | None) -> int:
        default = self.provider_thresholds[self.default_provider]
        return self.provider_thresholds.get(provider or self.default_provider, default)


DEFAULT_HYPERPARAMETERS = Hyperparameters()


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AnalysisOptions:
    """Caller-owned options shared by every rule.

    Attributes:
        provider: ``anthropic``, ``openai`` or ``google``. Token thresholds fall back
            to the default provider when unset; provider-specific checks are skipped.
        tokenizer: ``text -> token count``. Defaults to :func:`estimate_tokens`.
        hyperparameters: Optional tuning overrides.
    """

    provider: str | None = None
    tokenizer: Tokenizer | None = None
    hyperparameters: Hyperparameters | None = None

    @property
    def hp(self) -> Hyperparameters:
        return self.hyperparameters or DEFAULT_HYPERPARAMETERS

    def count_tokens(self, text: str) -> int:
        if self.tokenizer is not None:
            return self.tokenizer(text)
        return estimate_tokens(text, self.hp)


@dataclass(frozen=True)
class Finding:
    id: str
    rule: str
    severity: Severity
    title: str
    description: str
    affected_entry: str
    recommendation: str
    provider: str = ALL
    meta: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "rule": self.rule,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "affected_entry": self.affected_entry,
            "recommendation": self.recommendation,
            "provider": self.provider,
            "meta": dict(self.meta),
        }


@dataclass(frozen=True)
class PromptEntry:
    identifier: str
    name: str = ""
    content: str = ""
    enabled: bool = False
    role: str | None = None
    injection_position: int = 0
    injection_depth: int | None = None

    @property
    def label(self) -> str:
        return self.name or self.identifier

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> PromptEntry:
        depth = raw.get("injection_depth")
        return cls(
            identifier=str(raw.get("identifier", "")),
            name=raw.get("name") or "",
            content=raw.get("content") or "",
            enabled=bool(raw.get("enabled", False)),
            role=raw.get("role"),
            injection_position=raw.get("injection_position") or 0,
            injection_depth=int(depth) if isinstance(depth, (int, float)) and not isinstance(depth, bool) else None,
        )


@dataclass(frozen=True)
class NormalizedPreset:
    """Effective ordered sequence plus identifier lookup for one preset snapshot."""

    order: tuple[str, ...]
    entries: Mapping[str, PromptEntry]
    prompts: tuple[PromptEntry, ...]
    squash_system_messages: bool = False

    @property
    def total_entries(self) -> int:
        return len(self.order)

    def entry(self, identifier: str) -> PromptEntry | None:
        return self.entries.get(identifier)

    def content(self, identifier: str) -> str:
        entry = self.entries.get(identifier)
        return entry.content if entry else ""

    def label(self, identifier: str) -> str:
        entry = self.entries.get(identifier)
        return entry.label if entry else identifier

    def in_order(self, identifier: str) -> bool:
        return identifier in self.order


@dataclass(frozen=True)
class _AnalysisState:
    findings: tuple[Finding, ...]
    summary: dict[str, int]

    @classmethod
    def initial(cls) -> _AnalysisState:
        return cls(findings=(), summary={severity: 0 for severity in SEVERITIES})

    def merge(self, findings: list[Finding]) -> _AnalysisState:
        summary = dict(self.summary)
        for finding in findings:
            summary[finding.severity] = summary.get(finding.severity, 0) + 1
        return _AnalysisState(findings=self.findings + tuple(findings), summary=summary)


_Rule = Callable[[Any, "AnalysisOptions | Mapping[str, Any] | None"], list[Finding]]

# ---------------------------------------------------------------------------
# Compiled patterns
# ---------------------------------------------------------------------------

_DYNAMIC_MACROS = [
    "random", "roll", "time", "date", "weekday", "isotime", "isodate",
    "idle_duration", "time_UTC",
]
_DYNAMIC_MACRO_RE = re.compile(
    r"\{\{(" + "|".join(re.escape(m) for m in _DYNAMIC_MACROS) + r")(::|\}\})",
    re.IGNORECASE,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def estimate_tokens(text: str, hyperparameters: Hyperparameters | None = None) -> int:
    """Rough token count: one token per ``chars_per_token`` characters, rounded up."""
    hp = hyperparameters or DEFAULT_HYPERPARAMETERS
    return math.ceil(len(text) / hp.chars_per_token)


def has_dynamic_macros(content: str | None) -> bool:
    if not content:
        return False
    return _DYNAMIC_MACRO_RE.search(content) is not None


def is_volatile(identifier: str, content: str | None, hyperparameters: Hyperparameters | None = None) -> bool:
    """Whether an entry changes between requests.

    Chat history and example dialogue are always volatile; anything else is
    volatile only when its text contains a non-deterministic macro.
    """
    hp = hyperparameters or DEFAULT_HYPERPARAMETERS
    return identifier in hp.volatile_identifiers or has_dynamic_macros(content)


def _coerce_options(options: AnalysisOptions | Mapping[str, Any] | None) -> AnalysisOptions:
    if options is None:
        return AnalysisOptions()
    if isinstance(options, AnalysisOptions):
        return options
    return AnalysisOptions(
        provider=options.get("provider"),
        tokenizer=options.get("tokenizer"),
        hyperparameters=options.get("hyperparameters"),
    )


def _unwrap_order(prompt_order: list[Any]) -> list[Any]:
    first = prompt_order[0]
    if isinstance(first, Mapping) and first.get("order"):
        return list(first["order"])
    return prompt_order


def normalize_preset(preset: Any) -> NormalizedPreset | None:
    """Build the effective ordered sequence and entry lookup.

    Returns ``None`` when the preset is missing or lacks ``prompts`` /
    ``prompt_order``; callers treat that as "nothing to analyze".
    """
    if not isinstance(preset, Mapping):
        return None
    raw_prompts = preset.get("prompts")
    raw_order = preset.get("prompt_order")
    if not raw_prompts or not raw_order or not isinstance(raw_order, (list, tuple)):
        return None

    records = _unwrap_order(list(raw_order))
    order = tuple(
        str(record.get("identifier", ""))
        for record in records
        if isinstance(record, Mapping) and record.get("enabled")
    )
    prompts = tuple(PromptEntry.from_mapping(p) for p in raw_prompts if isinstance(p, Mapping))
    return NormalizedPreset(
        order=order,
        entries={p.identifier: p for p in prompts},
        prompts=prompts,
        squash_system_messages=preset.get("squash_system_messages") is True,
    )


def prompt_layout(preset: Any, hyperparameters: Hyperparameters | None = None) -> list[dict[str, object]]:
    """Per-position view of the enabled prompt order, tagged stable or volatile."""
    normalized = normalize_preset(preset)
    if normalized is None:
        return []
    return [
        {
            "position": index,
            "identifier": identifier,
            "name": normalized.label(identifier),
            "volatile": is_volatile(identifier, normalized.content(identifier), hyperparameters),
        }
        for index, identifier in enumerate(normalized.order)
    ]


def _stable_prefix(normalized: NormalizedPreset, hp: Hyperparameters) -> str:
    parts = []
    for identifier in normalized.order:
        content = normalized.content(identifier)
        if content and not is_volatile(identifier, content, hp):
            parts.append(content)
    return "\n".join(parts)


def stable_prefix_tokens(preset: Any, options: AnalysisOptions | Mapping[str, Any] | None = None) -> int:
    """Estimated token count of the contiguous stable content, 0 for an empty preset."""
    opts = _coerce_options(options)
    normalized = normalize_preset(preset)
    if normalized is None:
        return 0
    return opts.count_tokens(_stable_prefix(normalized, opts.hp))


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def check_macro_placement(preset: Any, options: AnalysisOptions | Mapping[str, Any] | None = None) -> list[Finding]:
    """Flag every dynamic macro, graded by how early in the prompt order it sits."""
    hp = _coerce_options(options).hp
    normalized = normalize_preset(preset)
    if normalized is None or normalized.total_entries == 0:
        return []

    total = normalized.total_entries
    findings: list[Finding] = []
    for index, identifier in enumerate(normalized.order):
        entry = normalized.entry(identifier)
        if entry is None or not entry.content:
            continue
        fraction = index / total
        if index == 0:
            severity: Severity = "critical"
        elif fraction < hp.early_position_fraction:
            severity = "warning"
        else:
            severity = "info"

        for occurrence, match in enumerate(_DYNAMIC_MACRO_RE.finditer(entry.content)):
            macro = "{{" + match.group(1) + "}}"
            findings.append(Finding(
                id=f"macro-placement-{index}-{occurrence}",
                rule="macro-placement",
                severity=severity,
                title=f"Dynamic macro in {'system prompt' if severity == 'critical' else 'early prompt section'}",
                description=(
                    f'{macro} found in "{entry.label}" (position {index + 1} of {total}). This changes every '
                    "generation and invalidates the cached prefix for all content after it."
                ),
                affected_entry=identifier,
                recommendation=(
                    f"Move {macro} to a prompt entry in the latter half of the prompt order "
                    "(after chat history), or replace it with a fixed value."
                ),
                meta={"macro_found": macro, "position": index, "total_entries": total, "position_percent": fraction},
            ))
    return findings


def check_prompt_ordering(preset: Any, options: AnalysisOptions | Mapping[str, Any] | None = None) -> list[Finding]:
    """Flag volatile entries that sit in front of two or more stable entries."""
    hp = _coerce_options(options).hp
    normalized = normalize_preset(preset)
    if normalized is None:
        return []

    volatile = [is_volatile(i, normalized.content(i), hp) for i in normalized.order]
    findings: list[Finding] = []
    for index, identifier in enumerate(normalized.order):
        if not volatile[index]:
            continue
        stable_after = [
            later for offset, later in enumerate(normalized.order[index + 1:], start=index + 1)
            if not volatile[offset]
        ]
        # one trailing stable entry (e.g. a closing instruction) is tolerated
        if len(stable_after) < hp.min_stable_after_volatile:
            continue

        name = normalized.label(identifier)
        stable_names = ", ".join(normalized.label(s) for s in stable_after)
        findings.append(Finding(
            id=f"prompt-ordering-{index}",
            rule="prompt-ordering",
            severity="warning",
            title="Volatile entry interleaved before stable content",
            description=(
                f'"{name}" (position {index + 1}) is volatile and appears before {len(stable_after)} stable '
                f"entries ({stable_names}). This breaks the cacheable prefix: stable content after this "
                "point cannot be cached together with earlier stable content."
            ),
            affected_entry=identifier,
            recommendation=(
                f'Move "{name}" after all stable prompt entries so that the maximum amount of static '
                "content forms a contiguous cacheable prefix."
            ),
            meta={
                "volatile_position": index,
                "stable_entries_after": len(stable_after),
                "stable_identifiers": list(stable_after),
            },
        ))
    return findings


def check_token_thresholds(preset: Any, options: AnalysisOptions | Mapping[str, Any] | None = None) -> list[Finding]:
    """Flag a stable prefix too short for the provider to cache at all."""
    opts = _coerce_options(options)
    hp = opts.hp
    normalized = normalize_preset(preset)
    if normalized is None:
        return []

    provider = opts.provider or hp.default_provider
    threshold = hp.threshold_for(provider)
    tokens = opts.count_tokens(_stable_prefix(normalized, hp))
    if tokens >= threshold:
        return []

    ratio = tokens / threshold
    severity: Severity = "warning" if ratio >= hp.near_threshold_ratio else "info"
    return [Finding(
        id=f"token-thresholds-{provider}",
        rule="token-thresholds",
        severity=severity,
        title=f"Stable prefix below {provider} cache threshold",
        description=(
            f"The stable prefix is estimated at {tokens} tokens, which is below the {provider} caching "
            f"threshold of {threshold} tokens. The prompt prefix will not be cached, resulting in full "
            "re-processing on every request."
        ),
        affected_entry=ALL,
        recommendation=(
            "Add more static content to your prompt entries before the chat history, or consolidate "
            f"prompt entries to reach at least {threshold} tokens in the stable prefix."
        ),
        provider=provider,
        meta={"estimated_tokens": tokens, "threshold": threshold, "deficit": threshold - tokens, "ratio": ratio},
    )]


def check_injection_depth(preset: Any, options: AnalysisOptions | Mapping[str, Any] | None = None) -> list[Finding]:
    """Flag in-chat injections shallow enough to disturb recent-message caching."""
    hp = _coerce_options(options).hp
    normalized = normalize_preset(preset)
    if normalized is None:
        return []

    findings: list[Finding] = []
    for entry in normalized.prompts:
        if not entry.enabled or not normalized.in_order(entry.identifier):
            continue
        if entry.injection_position != 1:
            continue
        depth = entry.injection_depth
        if depth is None or depth >= hp.safe_injection_depth:
            continue

        dynamic = has_dynamic_macros(entry.content)
        if depth <= hp.shallow_injection_depth:
            severity: Severity = "critical" if dynamic else "warning"
        else:
            severity = "warning" if dynamic else "info"

        findings.append(Finding(
            id=f"injection-depth-{entry.identifier}",
            rule="injection-depth",
            severity=severity,
            title=f"{'Dynamic' if dynamic else 'Static'} content injected at shallow depth {depth}",
            description=(
                f'"{entry.label}" is injected into chat at depth {depth}'
                f"{' with dynamic macros' if dynamic else ''}. Shallow injections near the end of the "
                "conversation disrupt the cacheable portion of recent messages."
            ),
            affected_entry=entry.identifier,
            recommendation=(
                f"Consider increasing the injection depth to {hp.safe_injection_depth}+ or moving this content "
                "to a fixed prompt position to preserve cache efficiency."
            ),
            meta={"depth": depth, "injection_position": entry.injection_position, "has_dynamic_content": dynamic},
        ))
    return findings


def _check_anthropic(normalized: NormalizedPreset, opts: AnalysisOptions) -> list[Finding]:
    system_count = sum(
        1 for p in normalized.prompts
        if p.enabled and p.role == "system" and normalized.in_order(p.identifier)
    )
    if system_count <= 1:
        return []
    if normalized.squash_system_messages:
        return [Finding(
            id="provider-specific-anthropic-squash-on",
            rule="provider-specific",
            severity="info",
            title="System message squashing enabled",
            description=(
                f"squash_system_messages is enabled with {system_count} system prompts. This consolidates "
                "them into a single system message, which is optimal for Anthropic prompt caching."
            ),
            affected_entry=ALL,
            recommendation="No action needed. This is the recommended configuration for Anthropic caching.",
            provider="anthropic",
            meta={"system_prompt_count": system_count, "squash_enabled": True},
        )]
    return [Finding(
        id="provider-specific-anthropic-squash-off",
        rule="provider-specific",
        severity="warning",
        title="Fragmented system messages without squashing",
        description=(
            f"{system_count} separate system prompts detected but squash_system_messages is not enabled. "
            "Anthropic treats each system message as a separate cache-breaking boundary."
        ),
        affected_entry=ALL,
        recommendation=(
            "Enable squash_system_messages in your preset settings to consolidate system prompts into a "
            "single message for better cache utilization."
        ),
        provider="anthropic",
        meta={"system_prompt_count": system_count, "squash_enabled": False},
    )]


def _check_openai(normalized: NormalizedPreset, opts: AnalysisOptions) -> list[Finding]:
    block = opts.hp.openai_alignment_block
    tokens = opts.count_tokens(_stable_prefix(normalized, opts.hp))
    remainder = tokens % block
    if remainder == 0:
        return []
    padding = block - remainder
    return [Finding(
        id="provider-specific-openai-alignment",
        rule="provider-specific",
        severity="info",
        title=f"Stable prefix not aligned to {block}-token boundary",
        description=(
            f"The stable prefix is estimated at {tokens} tokens (remainder {remainder} when divided by "
            f"{block}). OpenAI caches at {block}-token boundaries, so {padding} tokens are wasted in the "
            "current boundary."
        ),
        affected_entry=ALL,
        recommendation=(
            f"Consider adding ~{padding} tokens of static content to align your prefix to the next "
            f"{block}-token boundary for optimal cache utilization."
        ),
        provider="openai",
        meta={"estimated_tokens": tokens, "remainder": remainder, "padding_needed": padding},
    )]


def _check_google(normalized: NormalizedPreset, opts: AnalysisOptions) -> list[Finding]:
    threshold = opts.hp.threshold_for("google")
    tokens = opts.count_tokens(_stable_prefix(normalized, opts.hp))
    if tokens >= threshold:
        return []
    return [Finding(
        id="provider-specific-google-threshold",
        rule="provider-specific",
        severity="warning",
        title="Stable prefix below Google caching threshold",
        description=(
            f"The stable prefix is estimated at {tokens} tokens, below Google's {threshold}-token minimum "
            "for context caching. The prefix will not be cached."
        ),
        affected_entry=ALL,
        recommendation=(
            f"Add more static content to reach at least {threshold} tokens in your stable prefix for Google "
            "context caching to activate."
        ),
        provider="google",
        meta={"estimated_tokens": tokens, "threshold": threshold, "deficit": threshold - tokens},
    )]


_PROVIDER_CHECKS: dict[str, Callable[[NormalizedPreset, AnalysisOptions], list[Finding]]] = {
    "anthropic": _check_anthropic,
    "openai": _check_openai,
    "google": _check_google,
}


def check_provider_specific(preset: Any, options: AnalysisOptions | Mapping[str, Any] | None = None) -> list[Finding]:
    """Provider quirks; only runs when a provider is named explicitly."""
    opts = _coerce_options(options)
    normalized = normalize_preset(preset)
    if normalized is None or not opts.provider:
        return []
    check = _PROVIDER_CHECKS.get(opts.provider)
    if check is None:
        return []
    return check(normalized, opts)


# ---------------------------------------------------------------------------
# Pipeline wiring
# ---------------------------------------------------------------------------

_PIPELINE: list[_Rule] = [
    check_macro_placement,
    check_prompt_ordering,
    check_token_thresholds,
    check_injection_depth,
    check_provider_specific,
]


def _run_pipeline(preset: Any, options: AnalysisOptions, pipeline: list[_Rule]) -> _AnalysisState:
    def _merge(state: _AnalysisState, rule_fn: Callable[[], list[Finding]]) -> _AnalysisState:
        return state.merge(rule_fn())

    return reduce(_merge, [partial(rule, preset, options) for rule in pipeline], _AnalysisState.initial())


def _severity_of(finding: Finding | Mapping[str, Any]) -> str | None:
    if isinstance(finding, Finding):
        return finding.severity
    return finding.get("severity")


def calculate_score(findings: Iterable[Finding | Mapping[str, Any]], hyperparameters: Hyperparameters | None = None) -> int:
    """100 minus a fixed penalty per finding severity, clamped to the score range."""
    hp = hyperparameters or DEFAULT_HYPERPARAMETERS
    penalties = {"critical": hp.critical_penalty, "warning": hp.warning_penalty, "info": hp.info_penalty}
    score = hp.score_max - sum(penalties.get(_severity_of(f), 0) for f in findings)
    return max(hp.score_min, min(hp.score_max, score))


def score_band(score: int, hyperparameters: Hyperparameters | None = None) -> str:
    hp = hyperparameters or DEFAULT_HYPERPARAMETERS
    if score >= hp.band_excellent_min:
        return "excellent"
    if score >= hp.band_good_min:
        return "good"
    if score >= hp.band_needs_work_min:
        return "needs_work"
    return "poor"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def analyze(preset: Any, options: AnalysisOptions | Mapping[str, Any] | None = None) -> dict:
    """Score a chat-completion preset for prompt-cache efficiency.

    Args:
        preset: Mapping with ``prompts``, ``prompt_order`` and optionally
            ``squash_system_messages``. ``None`` or a malformed preset yields a clean result.
        options: :class:`AnalysisOptions` or a dict with the same keys.

    Returns:
        Dict with keys: findings (list of finding payloads), score (0-100),
        summary (count per severity), band.
    """
    opts = _coerce_options(options)
    hp = opts.hp
    state = _run_pipeline(preset, opts, _PIPELINE)
    score = calculate_score(state.findings, hp)
    logger.debug(f"cache analysis: provider={opts.provider} findings={len(state.findings)} score={score} summary={state.summary}")
    return {
        "findings": [f.to_payload() for f in state.findings],
        "score": score,
        "summary": dict(state.summary),
        "band": score_band(score, hp),
    }
