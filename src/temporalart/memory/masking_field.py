"""
Multi-scale masking field of list chunks (LIST PARSE, Grossberg & Kazerounian 2016).

A stored item sequence is segmented from its most recent item backwards, the
way a masking field codes the list that ends at the current item. At every
segment end a list-chunk cell is proposed for each admissible chunk size,
and the cells compete in a shunting field on the masking-field tier:

    dy_j/dt = -A y_j + (B - y_j)(J_j + s y_j) - y_j sum_k M_jk f(y_k)

    J_j  = gain * sum_{i in window_j} a_i / size_j^exponent
    M_jk = masking_inhibition * size_k / max_size      (j != k)
    f(y) = y^2

Bigger cells receive more total input and inhibit their rivals more
strongly, so the most recent items are coded by the largest chunk that still
fits (self-similar masking) and a ten-digit number parses as 3-3-4. A size
is admissible only if the earlier part of the sequence can still be tiled
by the allowed sizes.

The winning cell's template is learned on the weight tier by an instar rule
and then matched against the stored chunk categories of the same size:

    match = |min(I, w)| / |I| >= vigilance  ->  resonance, refine category
                                    else    ->  recruit a new category
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from temporalart.dynamics.kernels import match_ratio
from temporalart.errors import InvalidParameterError
from temporalart.integrator import (
    IntegrationResult,
    Integrator,
    InstarLearning,
    ShuntingField,
)
from temporalart.parameters import (
    IntegratorParameters,
    MaskingFieldParameters,
    ShuntingParameters,
    TimeScaleParameters,
    TimeScaleTier,
)
from temporalart.state import DynamicsState

logger = logging.getLogger(__name__)


def squared_signal(y: np.ndarray) -> np.ndarray:
    """Faster-than-linear signal f(y) = max(y, 0)^2; sharpens the competition."""
    r = np.maximum(y, 0.0)
    return r * r


@dataclass(frozen=True, eq=False)
class ChunkCategory:
    """A learned list-chunk category held in long-term memory."""

    index: int
    size: int
    template: np.ndarray
    uses: int = 1


@dataclass(frozen=True)
class ListChunk:
    """
    One segment of the parsed sequence.

    Attributes:
        start: Position of the first item
        size: Number of items
        category: Index of the chunk category that coded the segment; -1 if
            none was recognised without learning
        activation: Final activity of the winning cell
        match: ART match between the segment and the category template
        resonant: True if an existing category was reused
    """

    start: int
    size: int
    category: int
    activation: float
    match: float
    resonant: bool

    @property
    def positions(self) -> Tuple[int, ...]:
        return tuple(range(self.start, self.start + self.size))


@dataclass(frozen=True)
class ChunkingStatistics:
    total_items: int
    total_chunks: int
    total_categories: int
    average_chunk_size: float
    chunking_efficiency: float


@dataclass
class ChunkingResult:
    """
    Outcome of parsing one sequence.

    Attributes:
        chunks: Segments in sequence order
        unchunked: Item positions no admissible chunk could cover
        residual_activity: Item activity left after the consumed items were reset
        competitions: Integration result of each segment's competition
    """

    chunks: Tuple[ListChunk, ...]
    unchunked: Tuple[int, ...]
    residual_activity: np.ndarray
    competitions: Tuple[IntegrationResult, ...]
    statistics: ChunkingStatistics

    @property
    def sizes(self) -> List[int]:
        return [chunk.size for chunk in self.chunks]


def tileable_lengths(n: int, sizes: Sequence[int]) -> List[bool]:
    """tileable[r] is True when r items can be split exactly into the given sizes."""
    tileable = [False] * (n + 1)
    tileable[0] = True
    for r in range(1, n + 1):
        tileable[r] = any(m <= r and tileable[r - m] for m in sizes)
    return tileable


class MaskingField:
    """
    List-chunk masking field with ART category memory.

    The chunk categories persist across calls to chunk_sequence(), so a
    sequence seen before resonates with the categories it created.

    Args:
        parameters: Masking-field parameters (phone-number preset if None)
        integrator_parameters: Step size and per-segment step budget
        time_scales: Tier ratios; competition runs on the masking-field tier
            and template learning on the weight tier
    """

    def __init__(self, parameters: Optional[MaskingFieldParameters] = None,
                 integrator_parameters: Optional[IntegratorParameters] = None,
                 time_scales: Optional[TimeScaleParameters] = None):
        self.parameters = parameters or MaskingFieldParameters.phone_number_defaults()
        self.integrator_parameters = integrator_parameters or IntegratorParameters()
        self.time_scales = time_scales or TimeScaleParameters()
        self.categories: List[ChunkCategory] = []
        p = self.parameters
        self.field_parameters = ShuntingParameters(
            decay_rate=p.decay_rate,
            ceiling=p.max_activation,
            floor=0.0,
            self_excitation=p.self_excitation,
            excitatory_strength=0.0,
            inhibitory_strength=p.masking_inhibition,
        )

    @property
    def chunk_sizes(self) -> List[int]:
        return list(range(self.parameters.min_chunk_size, self.parameters.max_chunk_size + 1))

    def reset(self):
        """Forget every learned chunk category."""
        self.categories = []

    def admissible_sizes(self, remaining: int, tileable: Sequence[bool]) -> List[int]:
        """
        Chunk sizes that can end a segment with `remaining` items still unparsed.

        If those items can be tiled exactly, only sizes that keep the earlier
        part tileable are admissible; otherwise any size that fits.
        """
        fitting = [m for m in self.chunk_sizes if m <= remaining]
        if tileable[remaining]:
            return [m for m in fitting if tileable[remaining - m]]
        return fitting

    def masking_matrix(self, sizes: Sequence[int]) -> np.ndarray:
        """Off-surround M_jk = masking_inhibition * size_k / max_size, zero diagonal."""
        scale = np.asarray(sizes, dtype=float) / self.parameters.max_chunk_size
        M = np.tile(self.parameters.masking_inhibition * scale, (len(sizes), 1))
        np.fill_diagonal(M, 0.0)
        return M

    def cell_inputs(self, strengths: np.ndarray, end: int, sizes: Sequence[int]) -> np.ndarray:
        """Self-similar bottom-up input of each candidate cell whose window ends at `end`."""
        p = self.parameters
        return np.array([
            p.input_gain * float(np.sum(strengths[end - m:end])) / m ** p.size_exponent
            for m in sizes
        ])

    @staticmethod
    def window_pattern(patterns: np.ndarray, start: int, size: int) -> np.ndarray:
        """Flattened items of a window scaled into [0, 1]; zeros stay zeros."""
        flat = patterns[start:start + size].ravel()
        peak = float(np.max(flat)) if flat.size else 0.0
        if peak <= 0:
            return np.zeros_like(flat)
        return flat / peak

    def best_category(self, pattern: np.ndarray, size: int) -> Tuple[Optional[ChunkCategory], float]:
        """Stored category of this size with the highest match, and that match."""
        best, best_match = None, -1.0
        for category in self.categories:
            if category.size != size:
                continue
            m = match_ratio(pattern, category.template)
            if m > best_match:
                best, best_match = category, m
        return best, max(best_match, 0.0)

    def _compete(self, strengths: np.ndarray, patterns: np.ndarray, end: int,
                 sizes: Sequence[int]) -> Tuple[IntegrationResult, List[np.ndarray]]:
        """Run the competition between the candidate cells of one segment."""
        width = self.parameters.max_chunk_size * patterns.shape[1]
        inputs = self.cell_inputs(strengths, end, sizes)

        rows, templates = [], []
        for m in sizes:
            window = self.window_pattern(patterns, end - m, m)
            category, match = self.best_category(window, m)
            resonant = category is not None and match >= self.parameters.vigilance
            template = category.template if resonant else window
            rows.append(np.pad(window, (0, width - window.size)))
            templates.append(np.pad(template, (0, width - template.size)))

        cells = ShuntingField(
            "masking_field", len(sizes), self.field_parameters,
            input_fn=lambda state: inputs,
            inhibition_matrix=self.masking_matrix(sizes),
            signal_fn=squared_signal,
            variable="chunk_activation",
            tier=TimeScaleTier.MASKING_FIELD,
        )
        learning = InstarLearning(
            "chunk_templates", self.parameters.learning_rate,
            presynaptic_variable="chunk_input",
            postsynaptic_variable="chunk_activation",
            variable="chunk_weights",
        )
        integrator = Integrator([cells, learning], self.integrator_parameters, self.time_scales)
        state = DynamicsState.create(
            chunk_activation=np.zeros(len(sizes)),
            chunk_input=np.stack(rows),
            chunk_weights=np.stack(templates),
        )
        return integrator.integrate(state), [row[: m * patterns.shape[1]] for row, m in zip(rows, sizes)]

    def _commit(self, size: int, pattern: np.ndarray, learned: np.ndarray,
                learn: bool = True) -> Tuple[int, float, bool]:
        """
        Resonate with a stored category or recruit a new one; returns (index, match, resonant).

        Without learning a resonant category is reported unchanged and a
        mismatch yields index -1.
        """
        category, match = self.best_category(pattern, size)
        resonant = category is not None and match >= self.parameters.vigilance
        if not learn:
            return (category.index if resonant else -1), match, resonant
        if resonant:
            refined = np.clip(learned, 0.0, 1.0)
            refined.setflags(write=False)
            self.categories[self.categories.index(category)] = ChunkCategory(
                index=category.index, size=size, template=refined, uses=category.uses + 1
            )
            return category.index, match, True

        if len(self.categories) >= self.parameters.max_chunks:
            weakest = min(self.categories, key=lambda c: (c.uses, c.index))
            self.categories.remove(weakest)
            logger.debug("Category memory full; pruned category %d", weakest.index)

        index = max((c.index for c in self.categories), default=-1) + 1
        template = np.array(pattern, dtype=float)
        template.setflags(write=False)
        self.categories.append(ChunkCategory(index=index, size=size, template=template))
        return index, 1.0, False

    def chunk_sequence(self, patterns: Sequence, item_strengths: Optional[Sequence[float]] = None,
                       learn: bool = True) -> ChunkingResult:
        """
        Parse a sequence of item patterns into list chunks.

        Args:
            patterns: Item vectors (non-negative, all the same length)
            item_strengths: Activity of each item in working memory; all 1.0 if None
            learn: Store and refine chunk categories; if False the categories are
                only looked up and left untouched

        Returns:
            ChunkingResult with the chunks in sequence order
        """
        vectors = [np.asarray(p, dtype=float).ravel() for p in patterns]
        if len({v.size for v in vectors}) > 1:
            raise InvalidParameterError("patterns", "sequence", "vectors of equal length")
        items = np.stack(vectors) if vectors else np.zeros((0, 1))
        if not np.all(np.isfinite(items)) or np.any(items < 0):
            raise InvalidParameterError("patterns", "sequence", "non-negative and finite")
        n = len(items)
        if item_strengths is None:
            strengths = np.ones(n)
        else:
            strengths = np.asarray(item_strengths, dtype=float)
            if strengths.shape != (n,) or np.any(strengths < 0) or not np.all(np.isfinite(strengths)):
                raise InvalidParameterError("item_strengths", item_strengths,
                                            f"{n} non-negative finite values")

        tileable = tileable_lengths(n, self.chunk_sizes)
        residual = strengths.copy()
        chunks: List[ListChunk] = []
        competitions: List[IntegrationResult] = []
        end = n
        while end > 0:
            sizes = self.admissible_sizes(end, tileable)
            if not sizes:
                break
            result, windows = self._compete(strengths, items, end, sizes)
            competitions.append(result)

            y = result.final_state["chunk_activation"]
            winner = int(np.argmax(y))
            size = sizes[winner]
            start = end - size
            width = size * items.shape[1]
            learned = result.final_state["chunk_weights"][winner][:width]
            category, match, resonant = self._commit(size, windows[winner], learned, learn)
            chunks.append(ListChunk(start=start, size=size, category=category,
                                    activation=float(y[winner]), match=match, resonant=resonant))
            outcome = "resonant" if resonant else ("new" if learn else "unknown")
            logger.debug("Chunk [%d, %d) -> category %d (%s, match %.3f)",
                         start, end, category, outcome, match)

            residual[start:end] *= self.parameters.reset_decay_factor
            end = start

        chunks.reverse()
        competitions.reverse()
        unchunked = tuple(range(end))
        chunked_items = sum(c.size for c in chunks)
        statistics = ChunkingStatistics(
            total_items=n,
            total_chunks=len(chunks),
            total_categories=len(self.categories),
            average_chunk_size=chunked_items / len(chunks) if chunks else 0.0,
            chunking_efficiency=chunked_items / n if n else 0.0,
        )
        logger.info("Parsed %d items into chunks %s", n, [c.size for c in chunks])
        return ChunkingResult(
            chunks=tuple(chunks),
            unchunked=unchunked,
            residual_activity=residual,
            competitions=tuple(competitions),
            statistics=statistics,
        )

    def chunk_working_memory(self, memory_result, learn: bool = True) -> ChunkingResult:
        """Parse the items held by a WorkingMemoryResult, weighted by their stored activity."""
        patterns = [item.pattern for item in memory_result.items]
        return self.chunk_sequence(patterns, item_strengths=memory_result.activations(), learn=learn)
