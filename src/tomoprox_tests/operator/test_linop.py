import math

import numpy as np
import pytest
import scipy.sparse as sps
import scipy.sparse.linalg as spsl

import tomoprox.info.exception as tpe
import tomoprox.info.warning as tpw
import tomoprox.operator as tpo


class TestExplicitLinOp:
    @pytest.fixture(params=["dense", "sparse"])
    def mat(self, request):
        rng = np.random.default_rng(0)
        A = rng.standard_normal((7, 4))
        A[np.fabs(A) < 0.5] = 0
        return A if (request.param == "dense") else sps.csc_matrix(A)

    def test_shape(self, mat):
        op = tpo.ExplicitLinOp(mat)
        assert op.dim_shape == (4,)
        assert op.codim_shape == (7,)

    def test_apply_adjoint(self, mat):
        op = tpo.ExplicitLinOp(mat)
        dense = mat.toarray() if sps.issparse(mat) else mat
        rng = np.random.default_rng(1)
        x, y = rng.standard_normal(4), rng.standard_normal(7)

        assert np.allclose(op.apply(x), dense @ x)
        assert np.allclose(op.adjoint(y), dense.T @ y)
        # <Ax, y> = <x, A^T y>
        assert np.isclose(np.dot(op.apply(x), y), np.dot(x, op.adjoint(y)))

    def test_apply_stacked(self, mat):
        op = tpo.ExplicitLinOp(mat)
        dense = mat.toarray() if sps.issparse(mat) else mat
        x = np.arange(12, dtype=float).reshape(3, 4)
        assert np.allclose(op.apply(x), x @ dense.T)

    def test_lipschitz(self, mat):
        op = tpo.ExplicitLinOp(mat)
        dense = mat.toarray() if sps.issparse(mat) else mat
        assert np.isclose(op.lipschitz, np.linalg.norm(dense, ord=2))

    def test_lipschitz_user(self, mat):
        op = tpo.ExplicitLinOp(mat, lipschitz=10)
        assert op.lipschitz == 10

    def test_transpose(self, mat):
        op = tpo.ExplicitLinOp(mat)
        opT = op.T
        assert opT.dim_shape == op.codim_shape
        assert opT.codim_shape == op.dim_shape
        assert opT.lipschitz == op.lipschitz
        assert opT.T is op

        y = np.ones(7)
        assert np.allclose(opT.apply(y), op.adjoint(y))

    def test_not_2d(self):
        with pytest.raises(tpe.ConfigurationError):
            tpo.ExplicitLinOp(np.ones(3))


class TestFiniteDifference:
    @pytest.mark.parametrize("dim", [2, 5, 30])
    def test_apply(self, dim):
        D = tpo.FiniteDifference(dim)
        x = np.arange(dim, dtype=float) ** 2
        assert D.codim_shape == (dim - 1,)
        assert np.allclose(D.apply(x), np.diff(x))

    @pytest.mark.parametrize("dim", [2, 5, 30])
    def test_lipschitz(self, dim):
        D = tpo.FiniteDifference(dim)
        assert np.isclose(D.lipschitz, np.linalg.norm(D.mat.toarray(), ord=2))
        assert D.lipschitz < 2

    def test_constant_in_kernel(self):
        D = tpo.FiniteDifference(10)
        assert np.allclose(D.apply(np.full(10, math.pi)), 0)

    def test_too_small(self):
        with pytest.raises(tpe.ConfigurationError):
            tpo.FiniteDifference(1)


class TestIdentityOp:
    def test_apply(self):
        op = tpo.IdentityOp(dim_shape=3)
        x = np.r_[1.0, 2.0, 3.0]
        assert np.array_equal(op.apply(x), x)
        assert np.array_equal(op.adjoint(x), x)
        assert op.lipschitz == 1


class TestFromSciOp:
    def test_apply_adjoint(self):
        rng = np.random.default_rng(2)
        mat = rng.standard_normal((6, 3))
        op = tpo.from_sciop(spsl.aslinearoperator(mat))

        assert op.dim_shape == (3,)
        assert op.codim_shape == (6,)
        x, y = rng.standard_normal(3), rng.standard_normal(6)
        assert np.allclose(op.apply(x), mat @ x)
        assert np.allclose(op.adjoint(y), mat.T @ y)
        assert np.isclose(op.lipschitz, np.linalg.norm(mat, ord=2))

    def test_precision_warning(self):
        mat = np.arange(6, dtype=np.int64).reshape(3, 2)
        with pytest.warns(tpw.PrecisionWarning):
            tpo.from_sciop(spsl.aslinearoperator(mat), lipschitz=1)


class TestAsLinOp:
    def test_passthrough(self):
        op = tpo.IdentityOp(dim_shape=2)
        assert tpo.as_linop(op) is op

    @pytest.mark.parametrize(
        "obj",
        [
            np.eye(3),
            sps.eye(3, format="csr"),
            spsl.aslinearoperator(np.eye(3)),
        ],
    )
    def test_convert(self, obj):
        op = tpo.as_linop(obj)
        assert np.allclose(op.apply(np.r_[1.0, 2.0, 3.0]), np.r_[1.0, 2.0, 3.0])

    def test_unknown(self):
        with pytest.raises(tpe.ConfigurationError):
            tpo.as_linop([[1, 0], [0, 1]])
