r"""
Step-size policies of primal-dual solvers.

A controller produces the (primal, dual) step-size pair :math:`(\tau, \sigma)` used at every iteration of
:py:class:`~tomoprox.opt.solver.pds._PrimalDualSplitting`, for a coupling operator :math:`\mathbf{K}`.
"""

import math

import tomoprox.abc as tpa
import tomoprox.info.exception as tpe
import tomoprox.info.ptype as tpt
import tomoprox.util as tpu

__all__ = [
    "FixedStep",
    "SpectralStep",
    "StepSizeController",
]


class StepSizeController:
    """
    Base class of step-size policies.
    """

    def __init__(self, safety: tpt.Real):
        r"""
        Parameters
        ----------
        safety: Real
            Constant :math:`c \in ]0, 1[` s.t. the initial step sizes are :math:`c / \Vert\mathbf{K}\Vert_{2}`.
        """
        try:
            assert 0 < safety < 1
            self._safety = float(safety)
        except Exception:
            raise tpe.ConfigurationError(f"safety: expected value in ]0, 1[, got {safety}.")

    @property
    def safety(self) -> float:
        return self._safety

    def init(self, K: tpa.LinOp) -> tuple[tpt.Real, tpt.Real]:
        r"""
        Initial step sizes :math:`\tau = \sigma = c / \Vert\mathbf{K}\Vert_{2}`.

        Raises
        ------
        ConfigurationError
            If the operator norm estimate of `K` is not a positive finite number.
        """
        norm = K.lipschitz
        try:
            assert math.isfinite(norm) and (norm > 0)
        except Exception:
            raise tpe.ConfigurationError(f"Operator norm estimate must be positive and finite, got {norm}.")
        gamma = self._safety / norm
        return gamma, gamma

    def update(
        self,
        x: tpt.NDArray,
        u: tpt.NDArray,
        K: tpa.LinOp,
        tau: tpt.Real,
        sigma: tpt.Real,
    ) -> tuple[tpt.Real, tpt.Real]:
        """
        Step sizes for the next iteration, given the latest primal/dual iterates.
        """
        raise NotImplementedError


class FixedStep(StepSizeController):
    r"""
    Constant step sizes :math:`\tau = \sigma = c / \Vert\mathbf{K}\Vert_{2}`.

    With :math:`c < 1`, :math:`\tau\sigma\Vert\mathbf{K}\Vert_{2}^{2} < 1`, which guarantees convergence of the
    primal-dual iterations.
    """

    def update(self, x, u, K, tau, sigma):
        return tau, sigma


class SpectralStep(StepSizeController):
    r"""
    Barzilai-Borwein-style spectral step sizes, recomputed after every iteration:

    .. math::

       \tau \leftarrow \frac{\langle x, \mathbf{K}^{T} u \rangle}{\Vert \mathbf{K}^{T} u \Vert_{2}^{2}},
       \qquad
       \sigma \leftarrow \frac{\langle x, \mathbf{K}^{T} u \rangle}{\Vert \mathbf{K} x \Vert_{2}^{2}}.

    If a denominator is exactly zero, the previous value is kept.  Likewise if the numerator is not positive, since a
    zero or negative step size is meaningless.

    Warning
    -------
    This heuristic usually speeds up convergence but voids the convergence guarantee of
    :py:class:`~tomoprox.opt.step.FixedStep`.
    """

    def update(self, x, u, K, tau, sigma):
        xp = tpu.get_array_module(x)
        Ktu = K.adjoint(u)
        Kx = K.apply(x)
        num, den_tau, den_sigma = tpu.compute(
            xp.sum(x * Ktu),
            xp.sum(Ktu**2),
            xp.sum(Kx**2),
        )
        num, den_tau, den_sigma = map(tpu.to_float, (num, den_tau, den_sigma))
        if num > 0:
            if den_tau > 0:
                tau = num / den_tau
            if den_sigma > 0:
                sigma = num / den_sigma
        return tau, sigma
