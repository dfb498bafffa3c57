"""
Deterministic template narrative.

Used when narrative.provider is "template", and as the fallback whenever the
remote provider fails, times out, or returns unusable text. Makes no
external calls. Output always contains the active time, focus percentage
and peak focus window exactly as they appear in the context.
"""

from __future__ import annotations

from workpulse.config_models import NarrativeConfig
from workpulse.narrative.base import NarrativeContext, NarrativeGenerator


def render_template(context: NarrativeContext) -> str:
    peak = context.peak_bucket or "none"
    lines = [
        f"Active time: {context.active_time} across {context.session_count} sessions.",
        f"Focus: {context.focus_percentage}% of active time ({context.focus_time}) in sustained blocks.",
        f"Peak focus window: {peak}.",
        f"Context switches: {context.switch_count} ({context.switches_per_hour} per hour), "
        f"fragmentation score {context.fragmentation_score}/100.",
    ]

    if context.top_apps:
        apps = ", ".join(f"{a['app']} ({a['time']})" for a in context.top_apps[:3])
        lines.append(f"Most used: {apps}.")

    if context.comparison:
        c = context.comparison
        lines.append(
            f"Versus the previous period: focus {c['focus_percentage_delta']} points, "
            f"switches per hour {c['switches_per_hour_delta']}, active time {c['active_time_delta']}."
        )

    return "\n".join(lines)


def render_low_confidence(context: NarrativeContext) -> str:
    peak = context.peak_bucket or "none"
    return (
        f"Only {context.active_time} of activity was recorded, so these numbers are a rough signal. "
        f"Focus: {context.focus_percentage}%. Peak focus window: {peak}."
    )


class TemplateNarrativeGenerator(NarrativeGenerator):
    name = "template"
    remote = False

    async def generate(self, context: NarrativeContext, config: NarrativeConfig) -> str:
        return render_template(context)
