import numpy as np
import pytest

import tomoprox.info.exception as tpe
import tomoprox.operator as tpo
import tomoprox.util as tpu


class TestL1Norm:
    def test_apply(self, xp):
        f = tpo.L1Norm(dim_shape=3, lam=2)
        y = f.apply(xp.array(np.r_[1.0, -2.0, 0.5]))
        assert y.shape == (1,)
        assert np.isclose(tpu.to_float(y[0]), 7)

    def test_apply_stacked(self):
        f = tpo.L1Norm(dim_shape=2)
        y = f.apply(np.r_[1.0, -2.0, 3.0, 4.0].reshape(2, 2))
        assert np.allclose(y, np.r_[3.0, 7.0].reshape(2, 1))

    @pytest.mark.parametrize("sigma", [0.1, 1, 10])
    def test_fenchel_prox(self, sigma, xp):
        # fenchel_prox() of the L1 norm is a projection onto the Linf ball.
        f = tpo.L1Norm(dim_shape=10, lam=0.5)
        rng = np.random.default_rng(0)
        x = 3 * rng.standard_normal(10)
        y = tpu.to_NUMPY(f.fenchel_prox(xp.array(x), sigma))
        assert np.allclose(y, tpo.prox_l1_dual(x, sigma, 0.5))
        assert np.allclose(y, np.clip(x, -0.5, 0.5))

    def test_negative_lam(self):
        with pytest.raises(tpe.ConfigurationError):
            tpo.L1Norm(dim_shape=3, lam=-1)


class TestQuadraticLoss:
    def test_apply(self):
        f = tpo.QuadraticLoss(np.r_[1.0, 1.0])
        assert np.isclose(f.apply(np.r_[2.0, 3.0])[0], 2.5)

    def test_prox(self):
        b = np.r_[1.0, -1.0]
        f = tpo.QuadraticLoss(b)
        x = np.r_[3.0, 3.0]
        assert np.allclose(f.prox(x, 1), np.r_[2.0, 1.0])


class TestLinearizedLeastSquares:
    @pytest.fixture
    def data(self):
        rng = np.random.default_rng(1)
        return rng.standard_normal((5, 3)), rng.standard_normal(5)

    def test_apply_grad(self, data):
        mat, b = data
        f = tpo.LinearizedLeastSquares(tpo.ExplicitLinOp(mat), b)
        x = np.r_[1.0, 0.0, -1.0]
        assert np.isclose(f.apply(x)[0], 0.5 * np.sum((mat @ x - b) ** 2))
        assert np.allclose(f.grad(x), mat.T @ (mat @ x - b))

    def test_shape_mismatch(self, data):
        mat, b = data
        with pytest.raises(tpe.ConfigurationError):
            tpo.LinearizedLeastSquares(tpo.ExplicitLinOp(mat), b[:-1])
