"""
Seeded random projection of embeddings onto the 2D life map.

The projection basis (mean vector and two random weight vectors) is derived
purely from the input batch, so re-running a projection over an unchanged
batch reproduces the same coordinates exactly.
"""

from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from ..models.core import Coordinates, ProjectionResult
from ..utils.config import ProjectionConfig
from ..utils.logging_config import get_logger
from .similarity import DimensionMismatchError

logger = get_logger(__name__)

# Linear congruential generator constants
LCG_MULTIPLIER = 9301
LCG_INCREMENT = 49297
LCG_MODULUS = 233280


def seeded_random(seed: float) -> Callable[[], float]:
    """Return a generator of floats in [0, 1) fully determined by ``seed``."""
    state = float(seed)

    def _next() -> float:
        nonlocal state
        state = (state * LCG_MULTIPLIER + LCG_INCREMENT) % LCG_MODULUS
        return state / LCG_MODULUS

    return _next


def derive_seed(embedding: Sequence[float], components: int = 4) -> float:
    """Seed derived from the sum of the first ``components`` values of an embedding."""
    return float(sum(embedding[:components]))


def projection_weights(seed: float, dimension: int) -> np.ndarray:
    """Build the (2, dimension) projection matrix: x weights then y weights, each in [-1, 1)."""
    rng = seeded_random(seed)
    draws = [rng() * 2 - 1 for _ in range(2 * dimension)]
    return np.asarray(draws, dtype=np.float64).reshape(2, dimension)


class SeededProjector:
    """Deterministic 2D projection of a batch of embeddings."""

    def __init__(self, config: ProjectionConfig):
        self.config = config

    def _to_matrix(self, embeddings: List[Sequence[float]], dimension: int) -> np.ndarray:
        for embedding in embeddings:
            if len(embedding) != dimension:
                raise DimensionMismatchError(f'Projection batch mixes dimensions {dimension} and {len(embedding)}')
        return np.asarray(embeddings, dtype=np.float64).reshape(len(embeddings), dimension)

    def _to_coordinates(self, raw: np.ndarray) -> List[Coordinates]:
        bound = self.config.bound
        scaled = np.clip(raw * self.config.scale, -bound, bound)
        return [Coordinates(x=float(x), y=float(y)) for x, y in scaled]

    def project(self,
                items: Sequence[Tuple[str, Sequence[float]]],
                probe: Optional[Sequence[float]] = None) -> ProjectionResult:
        """
        Project a batch of embeddings (and optionally a probe) to 2D.

        The seed comes from the first item and the centering mean from the
        persisted items only, so adding a probe never moves persisted items.
        With an empty batch the probe defines the basis and lands on the origin.

        Args:
            items: Ordered (id, embedding) pairs sharing one dimension
            probe: Extra embedding placed in the same space, never persisted

        Returns:
            ProjectionResult with coordinates keyed by id and the probe's
            coordinate separately

        Raises:
            DimensionMismatchError: If embeddings differ in dimension
        """
        if not items and probe is None:
            return ProjectionResult()

        anchor = items[0][1] if items else probe
        dimension = len(anchor)

        batch = self._to_matrix([embedding for _, embedding in items], dimension)
        probe_vector = self._to_matrix([probe], dimension) if probe is not None else None

        weights = projection_weights(derive_seed(anchor, self.config.seed_components), dimension)
        mean = batch.mean(axis=0) if items else probe_vector[0]

        result = ProjectionResult()
        if items:
            coordinates = self._to_coordinates((batch - mean) @ weights.T)
            result.coordinates = {item_id: coord for (item_id, _), coord in zip(items, coordinates)}
        if probe_vector is not None:
            result.probe = self._to_coordinates((probe_vector - mean) @ weights.T)[0]

        logger.debug(f'Projected {len(items)} embeddings of dimension {dimension}'
                     f"{' with probe' if probe is not None else ''}")
        return result
