import numpy as np

import tomoprox.abc as tpa
import tomoprox.info.exception as tpe
import tomoprox.info.ptype as tpt
import tomoprox.operator.prox as tpp
import tomoprox.util as tpu

__all__ = [
    "L1Norm",
    "LinearizedLeastSquares",
    "QuadraticLoss",
]


class L1Norm(tpa.ProxFunc):
    r"""
    Weighted :math:`\ell_{1}`-norm, :math:`\lambda \Vert\mathbf{x}\Vert_{1} := \lambda \sum_{i} |x_{i}|`.

    :py:meth:`~tomoprox.abc.ProxFunc.fenchel_prox` (Moreau's identity) evaluates to the projection onto the
    :math:`\ell_{\infty}`-ball of radius :math:`\lambda`.
    """

    def __init__(self, dim_shape: tpt.NDArrayShape, lam: tpt.Real = 1):
        super().__init__(dim_shape=dim_shape)
        try:
            assert lam >= 0
            self._lam = lam
        except Exception:
            raise tpe.ConfigurationError(f"lam: expected non-negative, got {lam}.")

    @property
    def lam(self) -> tpt.Real:
        return self._lam

    def apply(self, arr: tpt.NDArray) -> tpt.NDArray:
        xp = tpu.get_array_module(arr)
        y = self._lam * xp.fabs(arr).sum(axis=-1)[..., np.newaxis]
        return y

    def prox(self, arr: tpt.NDArray, tau: tpt.Real) -> tpt.NDArray:
        return tpp.prox_l1(arr, tau, self._lam)


class QuadraticLoss(tpa.ProxFunc):
    r"""
    Squared-distance loss :math:`\frac{1}{2} \Vert\mathbf{x} - \mathbf{b}\Vert_{2}^{2}`.
    """

    def __init__(self, data: tpt.NDArray):
        r"""
        Parameters
        ----------
        data: NDArray
            (N,) data vector :math:`\mathbf{b}`.
        """
        super().__init__(dim_shape=data.shape)
        self._data = data

    def apply(self, arr: tpt.NDArray) -> tpt.NDArray:
        r = arr - self._data
        y = 0.5 * (r**2).sum(axis=-1)[..., np.newaxis]
        return y

    def prox(self, arr: tpt.NDArray, tau: tpt.Real) -> tpt.NDArray:
        return tpp.prox_quadratic_data_simple(arr, tau, self._data)


class LinearizedLeastSquares(tpa.ProxFunc):
    r"""
    Least-squares data fidelity :math:`\frac{1}{2} \Vert\mathbf{A}\mathbf{x} - \mathbf{b}\Vert_{2}^{2}` equipped with
    a *linearized* proximal step (see :py:func:`~tomoprox.operator.prox_quadratic_data`).

    Warning
    -------
    :py:meth:`~tomoprox.operator.LinearizedLeastSquares.prox` is an inexact surrogate of the proximal operator.
    Consequently :py:meth:`~tomoprox.abc.ProxFunc.fenchel_prox` is not the proximal operator of the conjugate either.
    """

    def __init__(self, A: tpa.LinOp, data: tpt.NDArray):
        r"""
        Parameters
        ----------
        A: LinOp
            (M, N) forward operator.
        data: NDArray
            (M,) data vector :math:`\mathbf{b}`.
        """
        super().__init__(dim_shape=A.dim_shape)
        if tuple(data.shape) != A.codim_shape:
            raise tpe.ConfigurationError(f"data: expected shape {A.codim_shape}, got {data.shape}.")
        self._A = A
        self._data = data

    def residual(self, arr: tpt.NDArray) -> tpt.NDArray:
        r"""
        :math:`\mathbf{A}\mathbf{x} - \mathbf{b}`.
        """
        return self._A.apply(arr) - self._data

    def grad(self, arr: tpt.NDArray) -> tpt.NDArray:
        r"""
        :math:`\mathbf{A}^{T}(\mathbf{A}\mathbf{x} - \mathbf{b})`.
        """
        return self._A.adjoint(self.residual(arr))

    def apply(self, arr: tpt.NDArray) -> tpt.NDArray:
        r = self.residual(arr)
        y = 0.5 * (r**2).sum(axis=-1)[..., np.newaxis]
        return y

    def prox(self, arr: tpt.NDArray, tau: tpt.Real) -> tpt.NDArray:
        return tpp.prox_quadratic_data(arr, tau, self._data, self._A)
