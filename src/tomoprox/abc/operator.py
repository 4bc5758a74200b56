import math

import numpy as np

import tomoprox.info.ptype as tpt

__all__ = [
    "Operator",
    "ProxFunc",
    "LinOp",
]


def _as_shape(sh: tpt.NDArrayShape) -> tuple[int, ...]:
    if isinstance(sh, tpt.Integer):
        sh = (sh,)
    return tuple(map(int, sh))


class Operator:
    r"""
    Abstract operator :math:`f: \mathbb{R}^{N} \to \mathbb{R}^{M}`.

    Operators act on the trailing axis of their inputs: arrays of shape (..., N) are mapped to arrays of shape
    (..., M).
    """

    def __init__(
        self,
        dim_shape: tpt.NDArrayShape,
        codim_shape: tpt.NDArrayShape,
    ):
        self.dim_shape = _as_shape(dim_shape)
        self.codim_shape = _as_shape(codim_shape)

    @property
    def dim_size(self) -> int:
        return math.prod(self.dim_shape)

    @property
    def codim_size(self) -> int:
        return math.prod(self.codim_shape)

    def apply(self, arr: tpt.NDArray) -> tpt.NDArray:
        r"""
        Evaluate :math:`f` at specified point(s).
        """
        raise NotImplementedError

    def __call__(self, arr: tpt.NDArray) -> tpt.NDArray:
        r"""
        Alias of :py:meth:`~tomoprox.abc.Operator.apply`.
        """
        return self.apply(arr)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(dim={self.dim_shape}, codim={self.codim_shape})"


class ProxFunc(Operator):
    r"""
    Abstract proximable functional :math:`f: \mathbb{R}^{N} \to \mathbb{R}`.

    Notes
    -----
    * For :math:`\tau > 0`, the *proximal operator* of :math:`f` is defined as:

      .. math::

         \prox_{\tau f}(x) = \arg\min_{z} f(z) + \frac{1}{2\tau} \Vert x - z \Vert_{2}^{2}

    * The *Fenchel conjugate* of :math:`f` is :math:`f^{\ast}(x) = \max_{z} \langle x, z \rangle - f(z)`.
      From Moreau's identity, its proximal operator is given by:

      .. math::

         \prox_{\sigma f^{\ast}}(x) = x - \sigma \prox_{\frac{f}{\sigma}}(\frac{x}{\sigma})
    """

    def __init__(self, dim_shape: tpt.NDArrayShape):
        super().__init__(dim_shape=dim_shape, codim_shape=1)

    def prox(self, arr: tpt.NDArray, tau: tpt.Real) -> tpt.NDArray:
        r"""
        Evaluate :math:`\prox_{\tau f}` at specified point(s).
        """
        raise NotImplementedError

    def fenchel_prox(self, arr: tpt.NDArray, sigma: tpt.Real) -> tpt.NDArray:
        r"""
        Evaluate :math:`\prox_{\sigma f^{\ast}}` at specified point(s).
        """
        y = self.prox(arr / sigma, tau=1 / sigma)
        y *= -sigma
        y += arr
        return y


class LinOp(Operator):
    r"""
    Abstract linear operator :math:`\mathbf{A}: \mathbb{R}^{N} \to \mathbb{R}^{M}`.

    Sub-classes must provide :py:meth:`~tomoprox.abc.LinOp.apply`, :py:meth:`~tomoprox.abc.LinOp.adjoint` and an
    estimate of the operator norm :math:`\Vert\mathbf{A}\Vert_{2}` via the `lipschitz` attribute.  Solvers use this
    estimate as-is to set their step sizes.
    """

    def __init__(
        self,
        dim_shape: tpt.NDArrayShape,
        codim_shape: tpt.NDArrayShape,
    ):
        super().__init__(dim_shape=dim_shape, codim_shape=codim_shape)
        self.lipschitz = np.inf

    def adjoint(self, arr: tpt.NDArray) -> tpt.NDArray:
        r"""
        Evaluate :math:`\mathbf{A}^{T}` at specified point(s).
        """
        raise NotImplementedError

    @property
    def T(self) -> "LinOp":
        """
        Transposed operator.
        """
        return _TransposeOp(self)


class _TransposeOp(LinOp):
    def __init__(self, op: LinOp):
        super().__init__(
            dim_shape=op.codim_shape,
            codim_shape=op.dim_shape,
        )
        self._op = op
        self.lipschitz = op.lipschitz

    def apply(self, arr: tpt.NDArray) -> tpt.NDArray:
        return self._op.adjoint(arr)

    def adjoint(self, arr: tpt.NDArray) -> tpt.NDArray:
        return self._op.apply(arr)

    @property
    def T(self) -> LinOp:
        return self._op

    def __repr__(self) -> str:
        return f"{self._op!r}.T"
