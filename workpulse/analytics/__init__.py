"""Analytics Pipeline - Sessions, focus, switching and recommendations

Philosophy:
    Every number shown to the user must be reproducible from the raw
    observations. Every suggestion must point back at the number that
    triggered it.

Data Flow:
    normalizer -> sessionizer -> {focus, metrics} -> recommendations -> insights

    Each stage is a pure function of its input plus stage configuration.
    No stage mutates upstream data. pipeline.py wires the stages together
    and is the only place that touches the store or the narrative provider.

Components:
    models.py: Immutable records shared by all stages
    categories.py: Application -> context category lookup
    normalizer.py: Drop excluded/malformed records, collapse short idle
    sessionizer.py: Merge observations into work sessions
    focus.py: Context switches, focus periods, fragmentation score
    metrics.py: Period-level behavioral metrics and comparisons
    recommendations.py: At most three grounded suggestions
    insights.py: Period summary with generated or template narrative
    pipeline.py: Orchestration, period runs and concurrent backfill
"""

# Default thresholds (seconds)
IDLE_THRESHOLD_SECONDS = 300
NOISE_THRESHOLD_SECONDS = 10
MERGE_THRESHOLD_SECONDS = 30
MIN_FOCUS_SECONDS = 25 * 60

# Sentinel reported for ratio metrics over an empty period
EMPTY_RATIO = 0.0
