import collections.abc as cabc
import math

import numpy as np

import tomoprox.abc as tpa
import tomoprox.info.exception as tpe
import tomoprox.info.ptype as tpt
import tomoprox.util as tpu

__all__ = [
    "AbsError",
    "ConvergenceMonitor",
    "MaxIter",
    "Memorize",
    "iterate_progress",
]


def iterate_progress(
    x: tpt.NDArray,
    x_prev: tpt.NDArray,
    u: tpt.NDArray,
    u_prev: tpt.NDArray,
) -> float:
    r"""
    Euclidean distance between consecutive primal-dual iterates:

    .. math::

       \Vert [x; u] - [x_{prev}; u_{prev}] \Vert_{2} = \sqrt{\Vert x - x_{prev} \Vert_{2}^{2} + \Vert u - u_{prev}
       \Vert_{2}^{2}}
    """
    xp = tpu.get_array_module(x)
    dx = x - x_prev
    du = u - u_prev
    er = xp.sqrt(xp.sum(dx**2) + xp.sum(du**2))
    return tpu.to_float(er)


class MaxIter(tpa.StoppingCriterion):
    """
    Stop iterative solver after a fixed number of iterations.

    .. note::

       If you want to add a grace period to a solver, i.e. for it to do *at least* N iterations before stopping based
       on the value of another criteria, you can AND :py:class:`~tomoprox.opt.stop.MaxIter` with the other criteria.

       .. code-block:: python3

          sc = MaxIter(n=5) & AbsError(eps=0.1, var="opt")
          # If N_iter < 5  -> never stop.
          # If N_iter >= 5 -> stop if AbsError() decides to.
    """

    def __init__(self, n: tpt.Integer):
        """
        Parameters
        ----------
        n: Integer
            Max number of iterations allowed.
        """
        try:
            assert int(n) > 0
            self._n = int(n)
        except Exception:
            raise ValueError(f"n: expected positive integer, got {n}.")
        self._i = 0

    def stop(self, state: cabc.Mapping) -> bool:
        self._i += 1
        return self._i >= self._n

    def info(self) -> cabc.Mapping[str, float]:
        return dict(N_iter=self._i)

    def status(self):
        return tpa.ConvergenceStatus.MAX_ITER if (self._i >= self._n) else None

    def clear(self):
        self._i = 0


class Memorize(tpa.StoppingCriterion):
    """
    Memorize a scalar variable.  (Special :py:class:`~tomoprox.abc.StoppingCriterion` used to record objective values
    in the history of :py:class:`~tomoprox.abc.Solver`.)
    """

    def __init__(self, var: str):
        """
        Parameters
        ----------
        var: str
            Variable in :py:attr:`tomoprox.abc.Solver._mstate` to query.  Must hold a scalar.
        """
        self._var = var
        self._val = 0.0  # last memorized value in stop().

    def stop(self, state: cabc.Mapping) -> bool:
        self._val = tpu.to_float(state[self._var])
        return False

    def info(self) -> cabc.Mapping[str, float]:
        return {self._var: self._val}

    def clear(self):
        self._val = 0.0


class AbsError(tpa.StoppingCriterion):
    """
    Stop iterative solver once the norm of a variable falls strictly below a threshold.
    """

    def __init__(
        self,
        eps: tpt.Real,
        var: str = "opt",
        norm: tpt.Real = 2,
    ):
        """
        Parameters
        ----------
        eps: Real
            Non-negative threshold.  (``eps=0`` never triggers.)
        var: str
            Variable in :py:attr:`tomoprox.abc.Solver._mstate` to query.  Must hold a scalar or NDArray.
        norm: Real
            Ln norm to use >= 1 (or ``numpy.inf``) when `var` holds an array. (Default: L2.)
        """
        try:
            assert eps >= 0
            self._eps = float(eps)
        except Exception:
            raise ValueError(f"eps: expected non-negative threshold, got {eps}.")

        self._var = var

        try:
            assert norm >= 1
            self._norm = norm
        except Exception:
            raise ValueError(f"norm: expected >= 1, got {norm}.")

        self._val = math.inf  # last computed norm in stop().

    def stop(self, state: cabc.Mapping) -> bool:
        x = state[self._var]
        if isinstance(x, tpt.Real):
            val = abs(float(x))
        else:
            xp = tpu.get_array_module(x)
            if self._norm == np.inf:
                val = xp.max(xp.fabs(x))
            else:
                val = xp.sum(xp.fabs(x) ** self._norm) ** (1 / self._norm)
            val = tpu.to_float(val)
        self._val = val
        return self._val < self._eps

    def info(self) -> cabc.Mapping[str, float]:
        return {f"AbsError[{self._var}]": self._val}

    def clear(self):
        self._val = math.inf


class ConvergenceMonitor(tpa.StoppingCriterion):
    """
    Halting policy of primal-dual solvers.

    The monitor reads two scalars from the solver state after every iteration:

    * ``opt``: optimality (KKT) residual;
    * ``er``: iterate progress, see :py:func:`~tomoprox.opt.stop.iterate_progress`.

    It stops as soon as ``opt < opt_tol`` (checked first) or ``er < prog_tol``, or when `max_iter` iterations have
    completed.  Decisions use instantaneous values only.  The reason of the last stop is available via
    :py:meth:`~tomoprox.opt.stop.ConvergenceMonitor.status`.
    """

    def __init__(
        self,
        opt_tol: tpt.Real = 1e-6,
        prog_tol: tpt.Real = 1e-6,
        max_iter: tpt.Integer = 1000,
    ):
        try:
            self._opt = AbsError(eps=opt_tol, var="opt")
            self._prog = AbsError(eps=prog_tol, var="er")
            self._max_iter = MaxIter(n=max_iter)
        except ValueError as e:
            raise tpe.ConfigurationError(str(e)) from e
        self._status = None
        self._data = dict(er=math.nan, opt=math.nan)

    @classmethod
    def from_config(cls, cfg) -> "ConvergenceMonitor":
        """
        Build a monitor from a :py:class:`~tomoprox.opt.config.SolverConfig`.
        """
        return cls(opt_tol=cfg.opt_tol, prog_tol=cfg.prog_tol, max_iter=cfg.max_iter)

    def stop(self, state: cabc.Mapping) -> bool:
        # All sub-criteria are evaluated to keep their internal state in sync.
        s_opt = self._opt.stop(state)
        s_prog = self._prog.stop(state)
        s_iter = self._max_iter.stop(state)
        self._data = dict(er=self._prog._val, opt=self._opt._val)

        if s_opt:
            self._status = tpa.ConvergenceStatus.OPTIMALITY
        elif s_prog:
            self._status = tpa.ConvergenceStatus.PROGRESS
        elif s_iter:
            self._status = tpa.ConvergenceStatus.MAX_ITER
        else:
            self._status = None
        return self._status is not None

    def info(self) -> cabc.Mapping[str, float]:
        return dict(self._data)

    def status(self):
        return self._status

    def clear(self):
        self._opt.clear()
        self._prog.clear()
        self._max_iter.clear()
        self._status = None
        self._data = dict(er=math.nan, opt=math.nan)
