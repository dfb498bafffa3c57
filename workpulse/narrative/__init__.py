"""
Narrative Provider Package

Pluggable text generation for period summaries.

Architecture:
    insights.assemble_insight -> NarrativeGenerator (abstract)
                                        |
                             +----------+----------+
                             |                     |
                      TemplateNarrative     AnthropicNarrative
                      (deterministic)       (remote, fallible)

Usage:
    from workpulse.narrative import get_generator

    generator = get_generator(config.narrative)
"""

from workpulse.config_models import NarrativeConfig

from .base import (
    NarrativeContext,
    NarrativeError,
    NarrativeGenerator,
    NarrativeValidationError,
    validate_narrative,
)
from .circuit_breaker import CircuitBreaker, CircuitState
from .template import TemplateNarrativeGenerator, render_low_confidence, render_template


__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "NarrativeContext",
    "NarrativeError",
    "NarrativeGenerator",
    "NarrativeValidationError",
    "TemplateNarrativeGenerator",
    "get_generator",
    "render_low_confidence",
    "render_template",
    "validate_narrative",
]


def get_generator(config: NarrativeConfig | None = None) -> NarrativeGenerator:
    """
    Get the configured narrative generator.

    Raises:
        ValueError: unknown provider name
    """
    provider = (config or NarrativeConfig()).provider

    if provider == "template":
        return TemplateNarrativeGenerator()

    if provider == "anthropic":
        from .anthropic_generator import AnthropicNarrativeGenerator

        return AnthropicNarrativeGenerator()

    raise ValueError(f"Unknown narrative provider: {provider}")
