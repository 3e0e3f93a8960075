"""Unit tests for the affine transform helpers."""

import numpy as np
import pytest

from scadtrace.scene import transform


class TestElementaryTransforms:
    def test_translation_moves_points_not_vectors(self):
        m = transform.translation((1.0, -2.0, 3.0))
        assert transform.transform_point(m, (1.0, 1.0, 1.0)) == (2.0, -1.0, 4.0)
        assert transform.transform_vector(m, (1.0, 1.0, 1.0)) == (1.0, 1.0, 1.0)

    def test_scaling(self):
        m = transform.scaling((2.0, 3.0, 4.0))
        assert transform.transform_point(m, (1.0, 1.0, 1.0)) == (2.0, 3.0, 4.0)

    @pytest.mark.parametrize(
        "matrix,expected",
        [
            (transform.rotation_x(90), (0.0, 0.0, 1.0)),
            (transform.rotation_y(90), (0.0, 1.0, 0.0)),
            (transform.rotation_z(90), (-1.0, 0.0, 0.0)),
        ],
    )
    def test_quarter_turns_are_exact(self, matrix, expected):
        # (0, 1, 0) about x and z; (0, 1, 0) is fixed by y
        assert transform.transform_point(matrix, (0.0, 1.0, 0.0)) == expected

    def test_negative_quarter_turn(self):
        m = transform.rotation_z(-90)
        assert transform.transform_point(m, (1.0, 0.0, 0.0)) == (0.0, -1.0, 0.0)

    @pytest.mark.parametrize("degrees", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_angle_raises(self, degrees):
        with pytest.raises(ValueError):
            transform.rotation_z(degrees)
        with pytest.raises(ValueError):
            transform.rotation_axis(degrees, (1.0, 0.0, 0.0))


class TestComposedRotations:
    def test_xyz_order(self):
        # x first: (0, 1, 0) -> (0, 0, 1); then z leaves it alone
        m = transform.rotation_xyz((90, 0, 90))
        assert np.allclose(transform.transform_point(m, (0.0, 1.0, 0.0)), (0.0, 0.0, 1.0))
        # (1, 0, 0) is fixed by x, then z takes it to (0, 1, 0)
        assert np.allclose(transform.transform_point(m, (1.0, 0.0, 0.0)), (0.0, 1.0, 0.0))

    def test_axis_rotation_matches_elementary(self):
        m = transform.rotation_axis(30, (0.0, 0.0, 2.0))
        assert np.allclose(m, transform.rotation_z(30))

    def test_zero_axis_is_identity(self):
        assert np.array_equal(transform.rotation_axis(45, (0.0, 0.0, 0.0)), np.identity(4))

    def test_rotation_preserves_length(self):
        m = transform.rotation_axis(37, (1.0, 2.0, 3.0))
        p = transform.transform_point(m, (3.0, -1.0, 2.0))
        assert np.linalg.norm(p) == pytest.approx(np.sqrt(14.0))


class TestInvertible:
    def test_is_invertible(self):
        assert transform.is_invertible(transform.rotation_x(33))
        assert not transform.is_invertible(transform.scaling((1.0, 0.0, 1.0)))
