# =============================================================================
# Segmenter — Character-Sized Chunking Strategies
# =============================================================================
#
# Splits raw document text into an ordered list of chunks under one of three
# strategies. Sizes and overlaps are measured in characters.
#
#   FIXED_WIDTH ("character") — sliding window of `size` characters that
#       advances by `size - overlap`. The last window may be shorter.
#   SENTENCE — sentences are packed greedily while the joined chunk stays
#       within `size`; the next chunk re-uses the trailing whole sentences
#       that fit in `overlap`.
#   PARAGRAPH — the same packing over blank-line separated paragraphs.
#
# A single unit larger than `size` is handed to the next finer splitter:
#   paragraph → sentence packing → fixed-width windows
#
# The three default strategies below are always analysed together when a
# full strategy comparison is requested (see selector.py).
# =============================================================================

from __future__ import annotations

import enum
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from chunkwise.errors import ConfigurationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


class ChunkingStrategy(str, enum.Enum):
    """Closed set of segmentation algorithms."""

    FIXED_WIDTH = "character"
    SENTENCE = "sentence"
    PARAGRAPH = "paragraph"


@dataclass(frozen=True)
class Chunk:
    """A contiguous text span, the unit that gets embedded and stored."""

    text: str
    index: int  # 0-indexed position within the document
    strategy_name: str


def validate_parameters(size: int, overlap: int) -> None:
    """Reject window parameters that cannot produce a forward-moving split."""
    if size <= 0:
        raise ConfigurationError(
            "size must be > 0", details={"size": size},
        )
    if overlap < 0:
        raise ConfigurationError(
            "overlap must be >= 0", details={"overlap": overlap},
        )
    if overlap >= size:
        raise ConfigurationError(
            "overlap must be less than size",
            details={"size": size, "overlap": overlap},
        )


@dataclass(frozen=True)
class StrategyConfig:
    """A segmentation algorithm plus its size/overlap parameters."""

    strategy: ChunkingStrategy
    size: int
    overlap: int
    name: str
    description: str

    def __post_init__(self) -> None:
        validate_parameters(self.size, self.overlap)


DEFAULT_STRATEGIES: tuple[StrategyConfig, ...] = (
    StrategyConfig(
        strategy=ChunkingStrategy.FIXED_WIDTH,
        size=500,
        overlap=50,
        name="Character Splitter",
        description="Splits by character count with overlap",
    ),
    StrategyConfig(
        strategy=ChunkingStrategy.SENTENCE,
        size=300,
        overlap=30,
        name="Sentence Splitter",
        description="Splits by sentences",
    ),
    StrategyConfig(
        strategy=ChunkingStrategy.PARAGRAPH,
        size=800,
        overlap=100,
        name="Paragraph Splitter",
        description="Splits by paragraphs",
    ),
)

# Accepted spellings for strategy names coming from settings, query
# parameters, or stored report names.
_STRATEGY_ALIASES: dict[str, ChunkingStrategy] = {
    "character": ChunkingStrategy.FIXED_WIDTH,
    "fixed": ChunkingStrategy.FIXED_WIDTH,
    "fixed_width": ChunkingStrategy.FIXED_WIDTH,
    "character splitter": ChunkingStrategy.FIXED_WIDTH,
    "sentence": ChunkingStrategy.SENTENCE,
    "sentence splitter": ChunkingStrategy.SENTENCE,
    "paragraph": ChunkingStrategy.PARAGRAPH,
    "paragraph splitter": ChunkingStrategy.PARAGRAPH,
}

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
_PARAGRAPH_BOUNDARY = re.compile(r"\n\s*\n")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_strategy(name: str) -> ChunkingStrategy:
    """
    Resolve a strategy name to its enum member.

    Unknown names are a configuration error rather than a silent fallback
    to the character splitter.
    """
    key = (name or "").strip().lower()
    try:
        return _STRATEGY_ALIASES[key]
    except KeyError:
        raise ConfigurationError(
            f"Unknown chunking strategy '{name}'",
            details={"strategy": name, "valid": sorted(_STRATEGY_ALIASES)},
        ) from None


def default_config(strategy: ChunkingStrategy | str) -> StrategyConfig:
    """Return the default StrategyConfig for a strategy (enum or name)."""
    if not isinstance(strategy, ChunkingStrategy):
        strategy = parse_strategy(strategy)
    for config in DEFAULT_STRATEGIES:
        if config.strategy is strategy:
            return config
    raise ConfigurationError(
        f"No default configuration for strategy '{strategy.value}'",
    )


def segment(
    text: str,
    strategy: ChunkingStrategy,
    size: int,
    overlap: int,
    strategy_name: str | None = None,
) -> list[Chunk]:
    """
    Split text into chunks under one strategy.

    Args:
        text: Raw extracted document text.
        strategy: Which segmentation algorithm to run.
        size: Maximum characters per chunk.
        overlap: Characters carried from the end of one chunk into the next.
        strategy_name: Label stamped on every chunk. Defaults to the
            strategy's enum value.

    Returns:
        Chunks in document order, indexed from 0. Empty text gives [].

    Raises:
        ConfigurationError: If size/overlap are invalid.
    """
    validate_parameters(size, overlap)

    if not text or not text.strip():
        return []

    if strategy is ChunkingStrategy.FIXED_WIDTH:
        pieces = _split_fixed(text, size, overlap)
    elif strategy is ChunkingStrategy.SENTENCE:
        pieces = _split_by_sentences(text, size, overlap)
    elif strategy is ChunkingStrategy.PARAGRAPH:
        pieces = _split_by_paragraphs(text, size, overlap)
    else:
        raise ConfigurationError(f"Unsupported chunking strategy: {strategy!r}")

    label = strategy_name or strategy.value
    chunks = [
        Chunk(text=piece, index=i, strategy_name=label)
        for i, piece in enumerate(pieces)
    ]

    logger.debug(
        "Segmented %d chars into %d chunks (strategy=%s, size=%d, overlap=%d)",
        len(text), len(chunks), label, size, overlap,
    )
    return chunks


def segment_with(config: StrategyConfig, text: str) -> list[Chunk]:
    """Convenience wrapper: segment text with a StrategyConfig."""
    return segment(
        text,
        config.strategy,
        config.size,
        config.overlap,
        strategy_name=config.name,
    )


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _split_fixed(text: str, size: int, overlap: int) -> list[str]:
    pieces: list[str] = []
    step = size - overlap
    total = len(text)

    for start in range(0, total, step):
        end = min(start + size, total)
        window = text[start:end]
        if window.strip():
            pieces.append(window)
        if end >= total:
            break

    return pieces


def _split_by_sentences(text: str, size: int, overlap: int) -> list[str]:
    return _pack(
        _sentences(text),
        size,
        overlap,
        joiner=" ",
        split_oversized=lambda unit: _split_fixed(unit, size, overlap),
    )


def _split_by_paragraphs(text: str, size: int, overlap: int) -> list[str]:
    return _pack(
        _paragraphs(text),
        size,
        overlap,
        joiner="\n\n",
        split_oversized=lambda unit: _split_by_sentences(unit, size, overlap),
    )


def _sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_BOUNDARY.split(text) if s.strip()]


def _paragraphs(text: str) -> list[str]:
    return [p.strip() for p in _PARAGRAPH_BOUNDARY.split(text) if p.strip()]


def _joined_length(parts: list[str], joiner: str) -> int:
    if not parts:
        return 0
    return sum(len(p) for p in parts) + len(joiner) * (len(parts) - 1)


def _overlap_tail(parts: list[str], overlap: int, joiner: str) -> list[str]:
    """Trailing whole units whose joined length fits in `overlap`."""
    tail: list[str] = []
    for part in reversed(parts):
        if _joined_length([part, *tail], joiner) > overlap:
            break
        tail.insert(0, part)
    return tail


def _pack(
    units: list[str],
    size: int,
    overlap: int,
    joiner: str,
    split_oversized: Callable[[str], list[str]],
) -> list[str]:
    """Greedily pack units into chunks of at most `size` characters."""
    pieces: list[str] = []
    current: list[str] = []

    for unit in units:
        if len(unit) > size:
            if current:
                pieces.append(joiner.join(current))
                current = []
            pieces.extend(split_oversized(unit))
            continue

        if current and _joined_length([*current, unit], joiner) > size:
            pieces.append(joiner.join(current))
            current = _overlap_tail(current, overlap, joiner)
            # Drop carried units until the new one fits
            while current and _joined_length([*current, unit], joiner) > size:
                current.pop(0)

        current.append(unit)

    if current:
        pieces.append(joiner.join(current))

    return pieces
