"""
Insight Assembler

Combines metrics, recommendations and narrative text into a PeriodInsight.

Narrative policy:
- Periods with less active time than low_confidence_active_seconds get a
  minimal template summary flagged low_confidence; no provider call.
- Otherwise the configured generator is called with a bounded timeout and
  up to max_retries attempts, backing off backoff_base * 2**attempt between
  attempts.
- A failure, timeout, or structurally invalid reply (non-text, empty, too
  long) on every attempt, or an open circuit, falls back to the template.
  Narrative problems never fail the pipeline.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Sequence

from workpulse.analytics.models import BehavioralMetrics, NarrativeSource, PeriodInsight, Recommendation
from workpulse.config_models import AnalyticsConfig, NarrativeConfig
from workpulse.logging_config import get_logger
from workpulse.narrative.base import NarrativeContext, NarrativeGenerator, validate_narrative
from workpulse.narrative.circuit_breaker import CircuitBreaker
from workpulse.narrative.template import TemplateNarrativeGenerator, render_low_confidence, render_template

logger = get_logger(__name__)


async def _attempt_with_retries(
    context: NarrativeContext,
    generator: NarrativeGenerator,
    config: NarrativeConfig,
    breaker: CircuitBreaker | None,
) -> tuple[str, NarrativeSource]:
    last_error: str | None = None
    for attempt in range(config.max_retries):
        try:
            raw = await asyncio.wait_for(generator.generate(context, config), timeout=config.timeout_seconds)
            text = validate_narrative(raw, config.max_chars)
        except TimeoutError:
            last_error = f"timed out after {config.timeout_seconds}s"
        except Exception as e:
            last_error = str(e) or type(e).__name__
        else:
            if breaker is not None:
                breaker.record_success(generator.name)
            return text, NarrativeSource.GENERATED

        if breaker is not None:
            breaker.record_failure(generator.name)
        logger.warning(
            "narrative_attempt_failed",
            provider=generator.name,
            attempt=attempt + 1,
            max_retries=config.max_retries,
            error=last_error,
        )

        if attempt < config.max_retries - 1:
            if breaker is not None and not breaker.can_execute(generator.name):
                break
            await asyncio.sleep(config.backoff_base_seconds * (2 ** attempt))

    logger.info("narrative_fallback", provider=generator.name, reason=last_error or "circuit_open")
    return render_template(context), NarrativeSource.TEMPLATE


async def generate_narrative(
    context: NarrativeContext,
    generator: NarrativeGenerator,
    config: NarrativeConfig,
    breaker: CircuitBreaker | None = None,
) -> tuple[str, NarrativeSource]:
    """
    Narrative text for a period, with retries and template fallback.

    A cancelled run hands a half-open probe back to the breaker, since the
    request ended without a success or failure to record.

    Returns:
        (text, source) where source says whether the text was generated
    """
    if not generator.remote:
        return await generator.generate(context, config), NarrativeSource.TEMPLATE

    if breaker is not None and not breaker.can_execute(generator.name):
        logger.info("narrative_fallback", provider=generator.name, reason="circuit_open")
        return render_template(context), NarrativeSource.TEMPLATE

    try:
        return await _attempt_with_retries(context, generator, config, breaker)
    except asyncio.CancelledError:
        if breaker is not None:
            breaker.release(generator.name)
        raise


async def assemble_insight(
    metrics: BehavioralMetrics,
    recommendations: Sequence[Recommendation],
    generator: NarrativeGenerator | None = None,
    config: AnalyticsConfig | None = None,
    breaker: CircuitBreaker | None = None,
    drop_rate_alert: bool = False,
    now: datetime | None = None,
) -> PeriodInsight:
    """Build the summary record for one period."""
    config = config or AnalyticsConfig()
    generator = generator or TemplateNarrativeGenerator()
    context = NarrativeContext.from_metrics(metrics)

    low_confidence = metrics.active_time < config.metrics.low_confidence_active_seconds
    if low_confidence:
        narrative, source = render_low_confidence(context), NarrativeSource.TEMPLATE
    else:
        narrative, source = await generate_narrative(context, generator, config.narrative, breaker)

    return PeriodInsight(
        period_start=metrics.period_start,
        period_end=metrics.period_end,
        generated_at=now or datetime.now(timezone.utc),
        metrics=metrics,
        recommendations=tuple(recommendations),
        narrative=narrative,
        narrative_source=source,
        low_confidence=low_confidence,
        drop_rate_alert=drop_rate_alert,
    )
