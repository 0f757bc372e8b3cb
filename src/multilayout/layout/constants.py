"""Layout constants used across layout modules.

Centralizes defaults and thresholds shared by the algorithms, the
selector, the engine and the validator.
"""

# ---------------------------------------------------------------------------
# Node geometry
# ---------------------------------------------------------------------------
DEFAULT_NODE_WIDTH: float = 280.0
"""Width assumed for nodes that do not carry an explicit size."""

DEFAULT_NODE_HEIGHT: float = 220.0
"""Height assumed for nodes that do not carry an explicit size."""

LAYOUT_ORIGIN: float = 50.0
"""Top-left offset at which layered and tiled layouts start."""

DEFAULT_BOUNDS: tuple[float, float, float, float] = (0.0, 0.0, 800.0, 600.0)
"""Default (x, y, width, height) box used to seed initial positions."""

# ---------------------------------------------------------------------------
# Randomness
# ---------------------------------------------------------------------------
DEFAULT_SEED: int = 0
"""Seed for every random tiebreak and initial placement."""

# ---------------------------------------------------------------------------
# Graph analysis
# ---------------------------------------------------------------------------
CLUSTERING_SAMPLE_THRESHOLD: int = 1000
"""Above this node count the clustering coefficient is estimated from a sample."""

CLUSTERING_SAMPLE_SIZE: int = 500
"""Number of nodes sampled for the clustering estimate."""

# ---------------------------------------------------------------------------
# Quality scoring
# ---------------------------------------------------------------------------
QUALITY_WEIGHTS: dict[str, float] = {
    "dependency_compliance": 0.25,
    "visual_clarity": 0.2,
    "space_utilization": 0.1,
    "group_organization": 0.15,
    "edge_crossings": 0.15,
    "node_overlaps": 0.15,
}
"""Weights combining the quality measures into the overall score."""

IMPROVEMENT_THRESHOLD: float = 75.0
"""Quality measures below this score are reported as improvement areas."""

MAX_CROSSING_EDGES: int = 1500
"""Edge count above which crossings are not counted (quadratic check)."""

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
MAX_EXECUTION_TIME_MS: float = 10000.0
"""Default time budget for one algorithm run."""

MAX_MEMORY_MB: float = 512.0
"""Default peak memory budget for one algorithm run when tracked."""

MIN_OVERALL_SCORE: float = 70.0
"""Quality score below which the engine attaches a warning."""

ENGINE_HISTORY_SIZE: int = 100
"""Number of runs kept in the engine's rolling performance log."""

TREND_WINDOW: int = 10
"""Number of recent runs used for the performance trend."""

TREND_TOLERANCE_MS: float = 5.0
"""Slope magnitude (ms per run) under which the trend counts as stable."""

# ---------------------------------------------------------------------------
# Selector
# ---------------------------------------------------------------------------
SELECTOR_HISTORY_LIMIT: int = 1000
"""History length that triggers trimming."""

SELECTOR_HISTORY_KEEP: int = 800
"""History length kept after trimming."""

SIMILAR_SIZE_RATIO: float = 0.3
"""Past runs within this relative node-count difference count as similar."""

RECENCY_TIME_CONSTANT_DAYS: float = 30.0
"""Time constant of the exponential recency decay for historical runs."""

RECENCY_FLOOR: float = 0.1
"""Minimum recency weight of a historical run."""

DEFAULT_EXECUTION_ESTIMATE_MS: float = 5000.0
"""Assumed execution time of an algorithm without history."""

FAST_EXECUTION_MS: float = 2000.0
"""Historical average below which an algorithm counts as fast."""

# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------
MIN_SAFE_DISTANCE: float = 150.0
"""Minimum distance between node anchors before a spacing error is raised."""

TOLERANCE_THRESHOLD: float = 5.0
"""Slack subtracted from the spacing threshold."""

MAX_COORDINATE: float = 10000.0
"""Coordinates above this are implausibly large."""

MAX_LAYOUT_WIDTH: float = 5000.0
"""Bounding-box width above which a bounds error is raised."""

MAX_LAYOUT_HEIGHT: float = 3000.0
"""Bounding-box height above which a bounds error is raised."""

MAX_VALIDATED_NODES: int = 200
"""Node count above which a large-graph warning is raised."""

MAX_EDGE_CROSSINGS: int = 10
"""Crossing count above which a visual-clarity warning is raised."""

MAX_LAYER_WIDTH: int = 8
"""Nodes per layer above which a layer-balance warning is raised."""
