"""Tests for the seeded 2D projection."""

import math

import pytest

from lifecopilot.services.projection import (LCG_MODULUS, SeededProjector, derive_seed, projection_weights,
                                             seeded_random)
from lifecopilot.services.similarity import DimensionMismatchError
from lifecopilot.utils.config import ProjectionConfig

BATCH = [
    ('a', [0.12, -0.40, 0.33, 0.05, 0.90, -0.21]),
    ('b', [0.50, 0.10, -0.25, 0.70, -0.30, 0.44]),
    ('c', [-0.61, 0.27, 0.08, -0.15, 0.12, 0.38]),
    ('d', [0.02, 0.95, -0.44, 0.31, -0.07, -0.52]),
]


def unbounded_projector():
    return SeededProjector(ProjectionConfig(scale=1.0, bound=math.inf, seed_components=4, top_k=5))


@pytest.mark.parametrize('seed', [0.0, 1.0, -3.7, 0.123456, 12345.6, 233279.0])
def test_seeded_random_stays_in_unit_interval(seed):
    rng = seeded_random(seed)
    for _ in range(1000):
        value = rng()
        assert 0.0 <= value < 1.0


def test_seeded_random_sequence_is_reproducible():
    first = seeded_random(0.42)
    second = seeded_random(0.42)
    assert [first() for _ in range(50)] == [second() for _ in range(50)]


def test_seeded_random_known_values():
    rng = seeded_random(1.0)
    assert rng() == pytest.approx(58598 / LCG_MODULUS)
    assert rng() == pytest.approx(127215 / LCG_MODULUS)


def test_derive_seed_sums_leading_components():
    assert derive_seed([1.0, 2.0, 3.0, 4.0, 100.0]) == pytest.approx(10.0)
    assert derive_seed([0.5, 0.25]) == pytest.approx(0.75)


def test_projection_weights_shape_and_range():
    weights = projection_weights(0.77, 6)
    assert weights.shape == (2, 6)
    assert (weights >= -1.0).all() and (weights < 1.0).all()


def test_projection_weights_x_then_y_draw_order():
    rng = seeded_random(2.5)
    draws = [rng() * 2 - 1 for _ in range(6)]
    weights = projection_weights(2.5, 3)
    assert list(weights[0]) == pytest.approx(draws[:3])
    assert list(weights[1]) == pytest.approx(draws[3:])


def test_known_one_dimensional_projection(projector):
    result = projector.project([('low', [1.0]), ('high', [3.0])])

    w_x = 2 * (58598 / LCG_MODULUS) - 1
    w_y = 2 * (127215 / LCG_MODULUS) - 1
    assert result.coordinates['low'].x == pytest.approx(-1.0 * w_x * 1000)
    assert result.coordinates['low'].y == pytest.approx(-1.0 * w_y * 1000)
    assert result.coordinates['high'].x == pytest.approx(w_x * 1000)
    assert result.coordinates['high'].y == pytest.approx(w_y * 1000)


def test_projection_is_deterministic(projector):
    first = projector.project(BATCH)
    second = projector.project(BATCH)
    assert first.coordinates == second.coordinates


def test_reordering_after_first_item_keeps_coordinates(projector):
    reordered = [BATCH[0], BATCH[3], BATCH[1], BATCH[2]]
    first = projector.project(BATCH)
    second = projector.project(reordered)
    for item_id, coordinates in first.coordinates.items():
        assert second.coordinates[item_id].x == pytest.approx(coordinates.x)
        assert second.coordinates[item_id].y == pytest.approx(coordinates.y)


def test_coordinates_are_centered():
    result = unbounded_projector().project(BATCH)
    assert sum(c.x for c in result.coordinates.values()) == pytest.approx(0.0, abs=1e-9)
    assert sum(c.y for c in result.coordinates.values()) == pytest.approx(0.0, abs=1e-9)


def test_coordinates_are_clamped():
    projector = SeededProjector(ProjectionConfig(scale=1e9, bound=10000.0, seed_components=4, top_k=5))
    result = projector.project(BATCH)
    values = [value for c in result.coordinates.values() for value in (c.x, c.y)]
    assert all(-10000.0 <= value <= 10000.0 for value in values)
    assert any(abs(value) == 10000.0 for value in values)


def test_single_item_lands_on_origin(projector):
    result = projector.project([('only', [0.3, 0.1, -0.2, 0.9])])
    assert result.coordinates['only'].x == 0.0
    assert result.coordinates['only'].y == 0.0


def test_empty_batch_produces_nothing(projector):
    result = projector.project([])
    assert result.coordinates == {}
    assert result.probe is None


def test_probe_does_not_move_persisted_items(projector):
    probe = [0.9, 0.9, 0.9, -0.9, 0.0, 0.1]
    without_probe = projector.project(BATCH)
    with_probe = projector.project(BATCH, probe=probe)
    assert with_probe.coordinates == without_probe.coordinates
    assert with_probe.probe is not None


def test_probe_alone_lands_on_origin(projector):
    result = projector.project([], probe=[0.2, 0.4, 0.6])
    assert result.coordinates == {}
    assert result.probe.x == 0.0
    assert result.probe.y == 0.0


def test_mixed_dimensions_raise(projector):
    with pytest.raises(DimensionMismatchError):
        projector.project([('a', [0.1, 0.2]), ('b', [0.1, 0.2, 0.3])])


def test_probe_with_wrong_dimension_raises(projector):
    with pytest.raises(DimensionMismatchError):
        projector.project(BATCH, probe=[0.1, 0.2])
