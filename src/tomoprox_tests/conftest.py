import types
import typing as typ

import numpy as np
import pytest

import tomoprox.info.deps as tpd
import tomoprox.info.ptype as tpt
import tomoprox.runtime as tprt
import tomoprox.util as tpu


@pytest.fixture(params=tpd.supported_array_modules())
def xp(request) -> types.ModuleType:
    return request.param


@pytest.fixture(params=tprt.Width)
def width(request) -> tprt.Width:
    return request.param


def isclose(
    a: typ.Union[tpt.Real, tpt.NDArray],
    b: typ.Union[tpt.Real, tpt.NDArray],
    as_dtype: tpt.DType,
) -> np.ndarray:
    """
    Equivalent of `xp.isclose`, but where atol is automatically chosen based on `as_dtype`.

    This function always returns a computed array, i.e. NumPy/CuPy output.
    """
    atol = {
        tprt.Width.SINGLE.value: 2e-4,
        tprt.Width.DOUBLE.value: 1e-8,
    }
    # Numbers obtained by:
    # * \sum_{k >= (p+1)//2} 2^{-k}, where p=<number of mantissa bits>; then
    # * round up value to 3 significant decimal digits.
    prec = atol.get(np.dtype(as_dtype), tprt.Width.DOUBLE.value)
    eq = np.isclose(tpu.to_NUMPY(a), tpu.to_NUMPY(b), atol=prec)
    return eq


def allclose(
    a: tpt.NDArray,
    b: tpt.NDArray,
    as_dtype: tpt.DType,
) -> bool:
    """
    Equivalent of `all(isclose)`, but where atol is automatically chosen based on `as_dtype`.
    """
    return bool(np.all(isclose(a, b, as_dtype)))


def tv_problem(M: int = 50, N: int = 30, seed: int = 0) -> dict:
    # Well-conditioned TV-regularized least-squares instance.
    #
    # A has orthogonal columns scaled to [0.3, 0.5], x_gt is piecewise constant and b is a noisy
    # observation of A x_gt.
    rng = np.random.default_rng(seed)
    Q, _ = np.linalg.qr(rng.standard_normal((M, N)))
    A = Q * np.linspace(0.3, 0.5, N)
    x_gt = np.repeat(rng.uniform(-1, 1, size=5), N // 5)
    x_gt = np.pad(x_gt, (0, N - x_gt.size), mode="edge")
    b = A @ x_gt + 1e-2 * rng.standard_normal(M)
    return dict(A=A, b=b, x_gt=x_gt)
