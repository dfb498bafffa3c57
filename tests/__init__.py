"""WorkPulse Test Suite

Test organization:
- unit/: Unit tests for individual modules
  - analytics/: Pipeline stages (normalizer, sessionizer, focus, metrics,
    recommendations, insights)
  - narrative/: Narrative providers and the circuit breaker
  - storage/: SQLite store and read-only accessors
- integration/: Full pipeline runs, backfill and persistence

Running tests:
    # All tests
    pytest

    # Specific module
    pytest tests/unit/analytics/
"""
