# =============================================================================
# Strategy Selector — Evaluate Candidate Segmentations, Pick One
# =============================================================================
#
# evaluate_strategies() runs the segmenter under each configured strategy
# and scores every result with the analyzer. Strategies run sequentially:
# each spends at most one probe embedding call and there is no state shared
# between them.
#
# select_best() prefers strategies whose embedding test passed. Among those
# the highest quality score wins and ties go to the earlier strategy. If no
# strategy passed, the highest score overall wins.
#
# Evaluation flags are passed in as an EvaluationConfig value rather than
# read from global settings, so a caller (API request, Celery task, test)
# decides them explicitly.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from chunkwise.services.analyzer import StrategyReport, analyze
from chunkwise.services.embedder import EmbeddingFunction
from chunkwise.services.segmenter import (
    DEFAULT_STRATEGIES,
    StrategyConfig,
    default_config,
    segment_with,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationConfig:
    """
    Controls which strategies are evaluated and whether probes run.

    test_embedding_strategies=True → all default strategies, one probe each.
    test_embedding_strategies=False → only default_strategy, probe skipped.
    """

    test_embedding_strategies: bool = True
    default_strategy: str = "character"

    @classmethod
    def from_settings(cls, settings) -> EvaluationConfig:
        return cls(
            test_embedding_strategies=settings.test_embedding_strategies,
            default_strategy=settings.default_strategy,
        )


@dataclass(frozen=True)
class ChunkingReport:
    """All strategy reports for one document."""

    file_name: str
    total_characters: int
    strategies: tuple[StrategyReport, ...]


def select_best(reports: Sequence[StrategyReport]) -> StrategyReport:
    """
    Pick the strategy to use for embedding.

    Raises:
        ValueError: If `reports` is empty.
    """
    if not reports:
        raise ValueError("select_best() requires at least one strategy report")

    # max() keeps the first of equal keys, which gives the input-order tie-break
    passed = [r for r in reports if r.embedding_test_passed]
    if passed:
        return max(passed, key=lambda r: r.quality_score)
    return max(reports, key=lambda r: r.quality_score)


def strategies_to_evaluate(config: EvaluationConfig) -> tuple[StrategyConfig, ...]:
    """
    Resolve the strategies a config asks for.

    Raises:
        ConfigurationError: If default_strategy is not a known strategy.
    """
    if config.test_embedding_strategies:
        return DEFAULT_STRATEGIES
    return (default_config(config.default_strategy),)


def evaluate_strategies(
    text: str,
    file_name: str,
    embedding_probe: EmbeddingFunction | None,
    config: EvaluationConfig,
) -> ChunkingReport:
    """Segment and score a document under every configured strategy."""
    candidates = strategies_to_evaluate(config)

    reports: list[StrategyReport] = []
    for candidate in candidates:
        chunks = segment_with(candidate, text)
        report = analyze(
            chunks,
            candidate.name,
            candidate.description,
            embedding_probe,
            test_embedding=config.test_embedding_strategies,
        )
        reports.append(report)

    logger.info(
        "Evaluated %d strategies for '%s' (%d chars): %s",
        len(reports),
        file_name,
        len(text),
        ", ".join(f"{r.name}={r.quality_score:.0f}" for r in reports),
    )

    return ChunkingReport(
        file_name=file_name,
        total_characters=len(text),
        strategies=tuple(reports),
    )
