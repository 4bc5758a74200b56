r"""
Closed-form proximal operators.

All functions are pure and backend-agnostic: they act elementwise on NumPy/Dask/CuPy arrays (except
:py:func:`prox_quadratic_data` which also evaluates a linear operator) and never modify their inputs.

Given a convex function :math:`h` and a step size :math:`\gamma > 0`, the proximal operator of :math:`h` is

.. math::

   \prox_{\gamma h}(x) = \arg\min_{y} h(y) + \frac{1}{2\gamma} \Vert y - x \Vert_{2}^{2}.
"""

import tomoprox.abc as tpa
import tomoprox.info.ptype as tpt
import tomoprox.util as tpu

__all__ = [
    "prox_quadratic_data",
    "prox_quadratic_data_simple",
    "prox_l1",
    "prox_l1_dual",
]


def prox_quadratic_data(
    x: tpt.NDArray,
    gamma: tpt.Real,
    b: tpt.NDArray,
    A: tpa.LinOp,
) -> tpt.NDArray:
    r"""
    Linearized proximal step of :math:`f(x) = \Vert \mathbf{A} x - b \Vert_{2}^{2}`.

    .. math::

       y = x - \frac{\gamma}{1 + \gamma} \mathbf{A}^{T} (\mathbf{A} x - b)

    This is a single forward (gradient) step with damped step size, not the exact proximal operator of :math:`f`.  The
    primal-dual iterations of :py:class:`~tomoprox.opt.solver.TVLeastSquares` rely on this exact form.

    Parameters
    ----------
    x: NDArray
        (N,) evaluation point.
    gamma: Real
        Positive step size.
    b: NDArray
        (M,) data.
    A: LinOp
        (M, N) forward operator.
    """
    g = A.adjoint(A.apply(x) - b)
    y = x - (gamma / (1 + gamma)) * g
    return y


def prox_quadratic_data_simple(
    x: tpt.NDArray,
    gamma: tpt.Real,
    b: tpt.NDArray,
) -> tpt.NDArray:
    r"""
    Proximal operator of :math:`f(x) = \frac{1}{2} \Vert x - b \Vert_{2}^{2}`.

    .. math::

       y = \frac{x + \gamma b}{1 + \gamma}
    """
    y = (x + gamma * b) / (1 + gamma)
    return y


def prox_l1(
    x: tpt.NDArray,
    gamma: tpt.Real,
    lam: tpt.Real = 1,
) -> tpt.NDArray:
    r"""
    Proximal operator of :math:`h(x) = \lambda \Vert x \Vert_{1}`, i.e. elementwise soft-thresholding at level
    :math:`t = \gamma\lambda`:

    .. math::

       y_{i} = \max(0, x_{i} - t) - \max(0, -x_{i} - t)

    Notes
    -----
    Equivalent to :math:`\text{sign}(x_{i}) \max(0, |x_{i}| - t)`.  The two-max form is branch-free and maps
    :math:`x_{i} = 0` to exactly 0.  NaNs are propagated.
    """
    xp = tpu.get_array_module(x)
    t = gamma * lam
    y = xp.maximum(0, x - t) - xp.maximum(0, -x - t)
    return y


def prox_l1_dual(
    x: tpt.NDArray,
    gamma: tpt.Real,
    lam: tpt.Real = 1,
) -> tpt.NDArray:
    r"""
    Proximal operator of the Fenchel conjugate of :math:`h(x) = \lambda \Vert x \Vert_{1}`, obtained via Moreau's
    decomposition:

    .. math::

       y = x - \gamma \prox_{h/\gamma}(x/\gamma)

    The result is the projection of `x` onto the :math:`\ell_{\infty}`-ball of radius :math:`\lambda`.
    """
    y = x - gamma * prox_l1(x / gamma, 1 / gamma, lam)
    return y
