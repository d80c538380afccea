# =============================================================================
# Strategy Analyzer — Chunk Size Statistics & Quality Score
# =============================================================================
#
# Turns one candidate segmentation into a StrategyReport:
#
#   1. Size distribution over chunk character lengths (sorted ascending):
#      mean, min, max, nearest-rank P50/P85/P95, sample standard deviation,
#      coefficient of variation.
#   2. Embedding probe: at most ONE embedding call, on the first chunk.
#      With test_embedding=False the probe is skipped entirely to bound
#      provider cost during strategy comparison.
#   3. Quality score: additive points, see score_strategy().
#
# Reports are immutable. The score is attached in a second step with
# StrategyReport.with_quality_score(), which returns a new value.
# =============================================================================

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, replace

from chunkwise.services.embedder import EmbeddingFunction
from chunkwise.services.segmenter import Chunk

logger = logging.getLogger(__name__)

NO_CHUNKS_RESULT = "No chunks created"
SKIPPED_RESULT = "Skipped for cost optimization"
UNAVAILABLE_RESULT = "EmbeddingModel not available"


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SizeStatistics:
    """Size distribution of one segmentation, in characters."""

    count: int
    average: float
    minimum: int
    maximum: int
    median: float  # P50
    p85: float
    p95: float
    std_dev: float
    coefficient_of_variation: float

    @classmethod
    def empty(cls) -> SizeStatistics:
        return cls(0, 0.0, 0, 0, 0.0, 0.0, 0.0, 0.0, 0.0)


@dataclass(frozen=True)
class StrategyReport:
    """Scored summary of one strategy's output for one document."""

    name: str
    description: str
    chunk_count: int
    average_chunk_size: float
    min_chunk_size: int
    max_chunk_size: int
    median_chunk_size: float
    p85_chunk_size: float
    p95_chunk_size: float
    std_dev: float
    coefficient_of_variation: float
    embedding_test_passed: bool
    embedding_test_result: str
    quality_score: float = 0.0

    def with_quality_score(self, score: float) -> StrategyReport:
        return replace(self, quality_score=score)


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def percentile(sorted_sizes: Sequence[int], p: float) -> float:
    """
    Nearest-rank percentile on ascending-sorted data (no interpolation).

    index = ceil(p/100 * n) - 1, clamped to [0, n-1].
    """
    n = len(sorted_sizes)
    if n == 0:
        return 0.0
    index = math.ceil(p / 100.0 * n) - 1
    return float(sorted_sizes[max(0, min(index, n - 1))])


def standard_deviation(sizes: Sequence[int], mean: float) -> float:
    """Sample standard deviation (n - 1 denominator); 0 for n <= 1."""
    if len(sizes) <= 1:
        return 0.0
    squared = sum((size - mean) ** 2 for size in sizes)
    return math.sqrt(squared / (len(sizes) - 1))


def compute_size_statistics(sizes: Sequence[int]) -> SizeStatistics:
    """Compute the full size distribution for a list of chunk lengths."""
    if not sizes:
        return SizeStatistics.empty()

    ordered = sorted(sizes)
    average = sum(ordered) / len(ordered)
    std_dev = standard_deviation(ordered, average)

    return SizeStatistics(
        count=len(ordered),
        average=average,
        minimum=ordered[0],
        maximum=ordered[-1],
        median=percentile(ordered, 50),
        p85=percentile(ordered, 85),
        p95=percentile(ordered, 95),
        std_dev=std_dev,
        coefficient_of_variation=std_dev / average if average > 0 else 0.0,
    )


# ---------------------------------------------------------------------------
# Embedding Probe
# ---------------------------------------------------------------------------


def run_embedding_probe(
    first_chunk: Chunk,
    embedding_probe: EmbeddingFunction | None,
    test_embedding: bool,
) -> tuple[bool, str]:
    """
    Decide whether a strategy's chunks are embeddable.

    Returns:
        (passed, result_text)
    """
    if not test_embedding:
        return embedding_probe is not None, SKIPPED_RESULT

    if embedding_probe is None:
        return False, UNAVAILABLE_RESULT

    try:
        vector = embedding_probe(first_chunk.text)
    except Exception as exc:
        logger.warning(
            "Embedding probe failed for '%s': %s", first_chunk.strategy_name, exc,
        )
        return False, f"Error: {exc}"

    passed = bool(vector)
    return passed, "Success" if passed else "Failed"


# ---------------------------------------------------------------------------
# Quality Score
# ---------------------------------------------------------------------------
# Band limits are empirical and kept as-is. Within one metric the narrower
# band is tested first and only one band scores.
#
#   P85 in [200, 800]      +5   else in [100, 1000]   +2
#   P95 < 1200             +3   else < 1500           +1
#   CV < 0.3               +4   else < 0.6            +2
#   count in [5, 50]       +2   else in [2, 100]      +1
#   median in [200, 600]   +3   else in [100, 800]    +1
#   embedding test passed  +10
# ---------------------------------------------------------------------------


def score_strategy(report: StrategyReport) -> float:
    """Additive quality score for a report; typically 0-27."""
    score = 0.0

    p85 = report.p85_chunk_size
    if 200 <= p85 <= 800:
        score += 5
    elif 100 <= p85 <= 1000:
        score += 2

    if report.p95_chunk_size < 1200:
        score += 3
    elif report.p95_chunk_size < 1500:
        score += 1

    if report.coefficient_of_variation < 0.3:
        score += 4
    elif report.coefficient_of_variation < 0.6:
        score += 2

    count = report.chunk_count
    if 5 <= count <= 50:
        score += 2
    elif 2 <= count <= 100:
        score += 1

    median = report.median_chunk_size
    if 200 <= median <= 600:
        score += 3
    elif 100 <= median <= 800:
        score += 1

    if report.embedding_test_passed:
        score += 10

    logger.debug(
        "Strategy '%s' scored %.1f (P85=%.0f, P95=%.0f, CV=%.3f, count=%d, embedding=%s)",
        report.name, score, p85, report.p95_chunk_size,
        report.coefficient_of_variation, count, report.embedding_test_passed,
    )
    return score


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def analyze(
    chunks: Sequence[Chunk],
    strategy_name: str,
    description: str,
    embedding_probe: EmbeddingFunction | None,
    test_embedding: bool = True,
) -> StrategyReport:
    """
    Build the scored StrategyReport for one segmentation.

    An empty chunk list yields an all-zero report that fails the embedding
    test without calling the probe.
    """
    if not chunks:
        return StrategyReport(
            name=strategy_name,
            description=description,
            chunk_count=0,
            average_chunk_size=0.0,
            min_chunk_size=0,
            max_chunk_size=0,
            median_chunk_size=0.0,
            p85_chunk_size=0.0,
            p95_chunk_size=0.0,
            std_dev=0.0,
            coefficient_of_variation=0.0,
            embedding_test_passed=False,
            embedding_test_result=NO_CHUNKS_RESULT,
            quality_score=0.0,
        )

    stats = compute_size_statistics([len(chunk.text) for chunk in chunks])
    passed, result_text = run_embedding_probe(chunks[0], embedding_probe, test_embedding)

    report = StrategyReport(
        name=strategy_name,
        description=description,
        chunk_count=stats.count,
        average_chunk_size=stats.average,
        min_chunk_size=stats.minimum,
        max_chunk_size=stats.maximum,
        median_chunk_size=stats.median,
        p85_chunk_size=stats.p85,
        p95_chunk_size=stats.p95,
        std_dev=stats.std_dev,
        coefficient_of_variation=stats.coefficient_of_variation,
        embedding_test_passed=passed,
        embedding_test_result=result_text,
    )
    return report.with_quality_score(score_strategy(report))
