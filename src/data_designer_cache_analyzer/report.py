from __future__ import annotations

from collections.abc import Mapping
from html import escape
from typing import Any

from data_designer_cache_analyzer.core import SEVERITIES, prompt_layout

NO_PRESET = "No preset loaded"

_BAND_LABELS = {
    "excellent": "Excellent",
    "good": "Good",
    "needs_work": "Needs Work",
    "poor": "Poor",
}
_SEVERITY_ICONS = {"critical": "⛔", "warning": "⚠️", "info": "ℹ️"}
_SEVERITY_RANK = {severity: rank for rank, severity in enumerate(SEVERITIES)}


def sort_findings(findings: list[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    """Critical first, then warnings, then info; stable within a severity."""
    return sorted(findings, key=lambda f: _SEVERITY_RANK.get(f.get("severity"), len(SEVERITIES)))


def format_score_report(result: Mapping[str, Any] | None) -> str:
    if result is None:
        return NO_PRESET
    summary = result["summary"]
    return (
        f"Cache Efficiency Score: {result['score']}/100 "
        f"({summary['critical']} critical, {summary['warning']} warnings, {summary['info']} info)"
    )


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------


def render_text(result: Mapping[str, Any] | None) -> str:
    if result is None:
        return NO_PRESET
    lines = [format_score_report(result), f"Rating: {_BAND_LABELS.get(result.get('band'), '')}".rstrip()]
    findings = sort_findings(result["findings"])
    if not findings:
        lines.append("No issues found. Your preset looks cache-friendly!")
        return "\n".join(lines)
    for finding in findings:
        lines.append("")
        lines.append(f"[{finding['severity'].upper()}] {finding['title']} ({finding['rule']}, {finding['affected_entry']})")
        lines.append(f"  {finding['description']}")
        lines.append(f"  -> {finding['recommendation']}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# HTML
# ---------------------------------------------------------------------------


def _render_score_bar(score: int, band: str) -> str:
    return (
        '<div class="ca-score-section">'
        '<div class="ca-score-header">'
        f'<span class="ca-score-label ca-score-{band}">{score}</span>'
        f'<span class="ca-score-descriptor">{_BAND_LABELS.get(band, "")}</span>'
        "</div>"
        f'<div class="ca-score-bar"><div class="ca-score-bar-fill ca-score-{band}" style="width: {score}%"></div></div>'
        "</div>"
    )


def _render_summary_pills(summary: Mapping[str, int]) -> str:
    pills = [
        f'<span class="ca-pill ca-pill-{severity}">{_SEVERITY_ICONS[severity]} {summary[severity]} {severity.title()}</span>'
        for severity in SEVERITIES
        if summary.get(severity, 0) > 0
    ]
    if not pills:
        pills.append('<span class="ca-pill ca-pill-clean">✅ No issues</span>')
    return f'<div class="ca-summary-pills">{"".join(pills)}</div>'


def _render_finding_card(finding: Mapping[str, Any]) -> str:
    severity = finding["severity"]
    return (
        f'<div class="ca-finding-card ca-finding-{severity}">'
        '<div class="ca-finding-header">'
        f'<span class="ca-severity-badge ca-badge-{severity}">{_SEVERITY_ICONS.get(severity, "")} {severity}</span>'
        f'<span class="ca-finding-title">{escape(finding["title"])}</span>'
        "</div>"
        f'<div class="ca-finding-desc">{escape(finding["description"])}</div>'
        f'<div class="ca-finding-rec">\U0001f4a1 {escape(finding["recommendation"])}</div>'
        f'<div class="ca-finding-meta">{escape(finding["rule"])} • {escape(finding["affected_entry"])}</div>'
        "</div>"
    )


def _render_findings(findings: list[Mapping[str, Any]]) -> str:
    if not findings:
        return (
            '<div class="ca-findings-list"><div class="ca-empty-state">'
            '<div class="ca-empty-icon">✅</div>'
            '<div class="ca-empty-text">No issues found</div>'
            '<div class="ca-empty-subtext">Your preset looks cache-friendly!</div>'
            "</div></div>"
        )
    cards = "".join(_render_finding_card(f) for f in sort_findings(findings))
    return f'<div class="ca-findings-list">{cards}</div>'


def _render_prompt_order(preset: Any) -> str:
    rows = prompt_layout(preset)
    if not rows:
        return ""
    entries = []
    for row in rows:
        kind = "volatile" if row["volatile"] else "stable"
        entries.append(
            '<div class="ca-prompt-entry">'
            f'<div class="ca-prompt-dot ca-dot-{kind}"></div>'
            f'<span class="ca-prompt-name">{escape(str(row["name"]))}</span>'
            f'<span class="ca-prompt-tag ca-tag-{kind}">{kind}</span>'
            "</div>"
        )
    return f'<div class="ca-prompt-viz"><div class="ca-prompt-viz-title">Prompt Order</div>{"".join(entries)}</div>'


def render_empty_state() -> str:
    return (
        '<div class="ca-empty-state">'
        '<div class="ca-empty-icon">\U0001f525</div>'
        '<div class="ca-empty-text">Click Analyze to scan your preset</div>'
        '<div class="ca-empty-subtext">Check for cache efficiency issues across all providers</div>'
        "</div>"
    )


def render_html(result: Mapping[str, Any] | None, preset: Any = None) -> str:
    """Dashboard fragment for an analysis result.

    A missing result renders the empty "nothing analyzed yet" state rather than a score.
    """
    if result is None:
        return render_empty_state()
    return (
        _render_score_bar(result["score"], result.get("band", ""))
        + _render_summary_pills(result["summary"])
        + _render_findings(result["findings"])
        + _render_prompt_order(preset)
    )
