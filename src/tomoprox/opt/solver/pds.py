import collections.abc as cabc
import math
import typing as typ
import warnings

import numpy as np

import tomoprox.abc as tpa
import tomoprox.info.exception as tpe
import tomoprox.info.ptype as tpt
import tomoprox.info.warning as tpw
import tomoprox.operator as tpo
import tomoprox.opt.config as tpc
import tomoprox.opt.step as tps
import tomoprox.opt.stop as tpst
import tomoprox.runtime as tprt
import tomoprox.util as tpu

__all__ = [
    "DualDenoising",
    "TVLeastSquares",
    "solve_dual",
    "solve_tv",
]


def _as_data(b, name: str = "b") -> tpt.NDArray:
    try:
        tpu.get_array_module(b)
    except ValueError:
        b = np.asarray(b)
    if b.ndim != 1:
        raise tpe.ConfigurationError(f"{name}: expected 1D array, got shape {b.shape}.")
    return tprt.coerce(b)


class _PrimalDualSplitting(tpa.Solver):
    r"""
    Base class of primal-dual proximal splitting solvers for problems of the form

    .. math::

       \min_{\mathbf{x}} \; \mathcal{F}(\mathbf{x}) \;+\; \mathcal{H}(\mathbf{K}\mathbf{x}),

    where :math:`\mathcal{F}` and :math:`\mathcal{H}` are proximable and :math:`\mathbf{K}` is linear.

    Every iteration performs (Chambolle-Pock scheme with over-relaxation of the primal variable):

    .. math::

       \mathbf{x}_{k+1} & = \prox_{\tau \mathcal{F}}(\mathbf{x}_{k} - \tau \mathbf{K}^{T}\mathbf{u}_{k}) \\
       \bar{\mathbf{x}} & = 2\mathbf{x}_{k+1} - \mathbf{x}_{k} \\
       \mathbf{u}_{k+1} & = \prox_{\sigma \mathcal{H}^{\ast}}(\mathbf{u}_{k} + \sigma \mathbf{K} \bar{\mathbf{x}})

    followed by the evaluation of the iterate progress ``er`` and optimality residual ``opt``, and a step-size update.

    Sub-classes define the problem-specific parts:

    * ``_safety``: step-size safety constant :math:`c`, s.t. :math:`\tau = \sigma = c / \Vert\mathbf{K}\Vert_{2}`;
    * ``_optimality()``: optimality residual;
    * ``_solution_var``: which of ``x``/``u`` holds the signal of interest;
    * ``default_config``: default :py:class:`~tomoprox.opt.config.SolverConfig`.
    """

    default_config: typ.ClassVar[tpc.SolverConfig] = tpc.SolverConfig()
    _safety: typ.ClassVar[float] = 0.95
    _solution_var: typ.ClassVar[str] = "x"
    _adaptive_support: typ.ClassVar[bool] = False

    def __init__(
        self,
        f: tpa.ProxFunc,
        h: tpa.ProxFunc,
        K: tpa.LinOp,
        **kwargs,
    ):
        kwargs.update(log_var=kwargs.get("log_var", ("x", "u")))
        super().__init__(**kwargs)

        if f.dim_shape != K.dim_shape:
            raise tpe.ConfigurationError(f"Primal dimension mismatch: f acts on {f.dim_shape}, K on {K.dim_shape}.")
        if h.dim_shape != K.codim_shape:
            raise tpe.ConfigurationError(
                f"Dual dimension mismatch: h acts on {h.dim_shape}, K maps to {K.codim_shape}."
            )

        self._f = f
        self._h = h
        self._K = K
        self._step_ctrl = None

    def m_init(
        self,
        x0: tpt.NDArray = None,
        u0: tpt.NDArray = None,
        tau: tpt.Real = None,
        sigma: tpt.Real = None,
        adaptive_step_size: bool = None,
    ):
        mst = self._mstate  # shorthand
        mst["x"] = self._init_variable(x0, self._K.dim_shape, "x0")
        mst["u"] = self._init_variable(u0, self._K.codim_shape, "u0")

        if adaptive_step_size is None:
            adaptive_step_size = self.default_config.adaptive_step_size
        if adaptive_step_size and (not self._adaptive_support):
            msg = "\n".join(
                [
                    f"Adaptive step sizes are not supported by {self.__class__.__name__}.",
                    "Falling back to fixed step sizes.",
                ]
            )
            warnings.warn(msg, tpw.AutoInferenceWarning)
            adaptive_step_size = False
        klass = tps.SpectralStep if adaptive_step_size else tps.FixedStep
        self._step_ctrl = klass(safety=self._safety)

        tau0, sigma0 = self._step_ctrl.init(self._K)
        mst["tau"] = tau0 if (tau is None) else self._check_step(tau, "tau")
        mst["sigma"] = sigma0 if (sigma is None) else self._check_step(sigma, "sigma")
        mst["er"] = math.inf
        mst["opt"] = math.inf

    def m_step(self):
        mst = self._mstate  # shorthand
        x_prev, u_prev = mst["x"], mst["u"]

        x = self._f.prox(x_prev - mst["tau"] * self._K.adjoint(u_prev), mst["tau"])
        x_bar = 2 * x - x_prev
        u = self._h.fenchel_prox(u_prev + mst["sigma"] * self._K.apply(x_bar), mst["sigma"])

        mst["x"], mst["u"] = x, u
        mst["er"] = tpst.iterate_progress(x, x_prev, u, u_prev)
        mst["opt"] = tpu.to_float(self._optimality(x, u))
        mst["tau"], mst["sigma"] = self._step_ctrl.update(x, u, self._K, mst["tau"], mst["sigma"])

    def default_stop_crit(self) -> tpa.StoppingCriterion:
        return tpst.ConvergenceMonitor.from_config(self.default_config)

    def objective_terms(self) -> cabc.Mapping[str, float]:
        x = self._mstate["x"]
        f = tpu.to_float(self._f.apply(x)[..., 0])
        g = tpu.to_float(self._h.apply(self._K.apply(x))[..., 0])
        return dict(f=f, g=g, cost=f + g)

    def solution(self, which: typ.Literal["primal", "dual"] = None) -> tpt.NDArray:
        """
        Parameters
        ----------
        which: "primal", "dual"
            Variable to return.  Defaults to the variable holding the signal of interest, which is formulation
            dependent.

        Returns
        -------
        sol: NDArray
            Value of the chosen variable after the last iteration.
        """
        data, _ = self.stats()
        if which is None:
            var = self._solution_var
        elif which == "primal":
            var = "x"
        elif which == "dual":
            var = "u"
        else:
            raise ValueError(f"Parameter which must be one of ['primal', 'dual'] got: {which}.")
        assert var in data.keys(), f"Variable {var} was not logged (declare it in log_var to log it)."
        return data.get(var)

    def _optimality(self, x: tpt.NDArray, u: tpt.NDArray) -> tpt.Real:
        raise NotImplementedError

    def _init_variable(self, v: tpt.NDArray, shape: tuple, name: str) -> tpt.NDArray:
        ref = self._reference_array()
        if v is None:
            xp = tpu.get_array_module(ref)
            return xp.zeros(shape, dtype=ref.dtype)
        elif tuple(v.shape) != shape:
            raise tpe.ConfigurationError(f"{name}: expected shape {shape}, got {v.shape}.")
        else:
            return tprt.coerce(v)

    def _reference_array(self) -> tpt.NDArray:
        # Array whose backend/dtype the iterates inherit.
        raise NotImplementedError

    @staticmethod
    def _check_step(step: tpt.Real, name: str) -> float:
        try:
            assert math.isfinite(step) and (step > 0)
            return float(step)
        except Exception:
            raise tpe.ConfigurationError(f"{name} must be positive, got {step}.")


class TVLeastSquares(_PrimalDualSplitting):
    r"""
    Total-variation regularized least squares.

    Solves

    .. math::

       \min_{\mathbf{x}\in\mathbb{R}^{N}} \; \frac{1}{2}\Vert\mathbf{A}\mathbf{x} - \mathbf{b}\Vert_{2}^{2} \;+\;
       \lambda \Vert\mathbf{D}\mathbf{x}\Vert_{1},

    with :math:`\mathbf{A} \in \mathbb{R}^{M \times N}` a (tomography) matrix, :math:`\mathbf{b} \in \mathbb{R}^{M}`
    projection data and :math:`\mathbf{D} \in \mathbb{R}^{P \times N}` a finite-difference matrix.

    Remarks
    -------
    * The primal variable :math:`\mathbf{x}` is the signal, the dual variable :math:`\mathbf{u} \in \mathbb{R}^{P}`
      lives in the space of edges.  :py:meth:`~tomoprox.opt.solver.TVLeastSquares.solution` returns :math:`\mathbf{x}`.

    * The data term is handled via a linearized proximal step (see :py:func:`~tomoprox.operator.prox_quadratic_data`).

    * Step sizes are fixed to :math:`\tau = \sigma = 0.95 / \Vert\mathbf{D}\Vert_{2}`.

    * The optimality residual is :math:`\Vert\mathbf{A}^{T}(\mathbf{A}\mathbf{x} - \mathbf{b}) +
      \lambda\mathbf{D}^{T}\mathbf{u}\Vert_{2}`.

    Parameters (``__init__()``)
    ---------------------------
    * **A** (:py:class:`~tomoprox.abc.LinOp`, NDArray, sparse matrix)
      --
      (M, N) forward operator.
    * **b** (NDArray)
      --
      (M,) data.
    * **D** (:py:class:`~tomoprox.abc.LinOp`, NDArray, sparse matrix, :py:obj:`None`)
      --
      (P, N) regularization operator.  Identity if unspecified.
    * **lam** (Real)
      --
      Non-negative regularization parameter :math:`\lambda`.
    * **\*\*kwargs** (:py:class:`~collections.abc.Mapping`)
      --
      Other keyword parameters passed on to :py:meth:`tomoprox.abc.Solver.__init__`.

    Parameters (``fit()``)
    ----------------------
    * **x0**, **u0** (NDArray, :py:obj:`None`)
      --
      Initial primal/dual points.  Zero if unspecified.
    * **tau**, **sigma** (Real, :py:obj:`None`)
      --
      Primal/dual step sizes overriding the automatic choice.
    * **\*\*kwargs** (:py:class:`~collections.abc.Mapping`)
      --
      Other keyword parameters passed on to :py:meth:`tomoprox.abc.Solver.fit`.
    """

    default_config = tpc.SolverConfig(max_iter=1000)
    _safety = 0.95
    _solution_var = "x"
    _adaptive_support = False

    def __init__(
        self,
        A: tpt.MatrixLike,
        b: tpt.NDArray,
        D: tpt.MatrixLike = None,
        lam: tpt.Real = 1,
        **kwargs,
    ):
        A = tpo.as_linop(A)
        D = tpo.IdentityOp(dim_shape=A.dim_shape) if (D is None) else tpo.as_linop(D)
        b = _as_data(b)
        if D.dim_shape != A.dim_shape:
            raise tpe.ConfigurationError(f"D: expected input dimension {A.dim_shape}, got {D.dim_shape}.")
        if not math.isfinite(lam):
            raise tpe.ConfigurationError(f"lam: expected finite value, got {lam}.")

        super().__init__(
            f=tpo.LinearizedLeastSquares(A, b),
            h=tpo.L1Norm(dim_shape=D.codim_shape, lam=lam),
            K=D,
            **kwargs,
        )
        self._A = A
        self._b = b
        self._lam = lam

    def _optimality(self, x, u):
        xp = tpu.get_array_module(x)
        r = self._f.grad(x) + self._lam * self._K.adjoint(u)
        return xp.sqrt(xp.sum(r**2))

    def _reference_array(self):
        return self._b


class DualDenoising(_PrimalDualSplitting):
    r"""
    Back-projection denoising in dual form.

    Solves

    .. math::

       \min_{\mathbf{x}\in\mathbb{R}^{M}} \; \frac{1}{2}\Vert\mathbf{x} - \mathbf{b}\Vert_{2}^{2} \;+\;
       \lambda \Vert\mathbf{A}^{T}\mathbf{x}\Vert_{1},

    with :math:`\mathbf{A} \in \mathbb{R}^{M \times N}` a (tomography) matrix and :math:`\mathbf{b} \in
    \mathbb{R}^{M}` projection data.

    Remarks
    -------
    * The primal variable :math:`\mathbf{x}` lives in data (residual) space, the dual variable :math:`\mathbf{u} \in
      \mathbb{R}^{N}` is the signal of interest: :py:meth:`~tomoprox.opt.solver.DualDenoising.solution` returns
      :math:`\mathbf{u}`.

    * Initial step sizes are :math:`\tau = \sigma = 0.99 / \Vert\mathbf{A}\Vert_{2}`.  By default they are then
      updated with spectral (Barzilai-Borwein) estimates, see :py:class:`~tomoprox.opt.step.SpectralStep`.  Pass
      ``adaptive_step_size=False`` to :py:meth:`~tomoprox.abc.Solver.fit` to keep them fixed.

    * The optimality residual is :math:`\Vert\mathbf{x} - \mathbf{b} + \mathbf{A}\mathbf{u}\Vert_{2}`.

    Parameters (``__init__()``)
    ---------------------------
    * **A** (:py:class:`~tomoprox.abc.LinOp`, NDArray, sparse matrix)
      --
      (M, N) forward operator.
    * **b** (NDArray)
      --
      (M,) data.
    * **lam** (Real)
      --
      Non-negative regularization parameter :math:`\lambda`.  (Default: 1.)
    * **\*\*kwargs** (:py:class:`~collections.abc.Mapping`)
      --
      Other keyword parameters passed on to :py:meth:`tomoprox.abc.Solver.__init__`.

    Parameters (``fit()``)
    ----------------------
    * **x0**, **u0** (NDArray, :py:obj:`None`)
      --
      Initial primal/dual points.  Zero if unspecified.
    * **tau**, **sigma** (Real, :py:obj:`None`)
      --
      Initial primal/dual step sizes overriding the automatic choice.
    * **adaptive_step_size** (:py:obj:`bool`)
      --
      Use spectral step sizes.  (Default: True.)
    * **\*\*kwargs** (:py:class:`~collections.abc.Mapping`)
      --
      Other keyword parameters passed on to :py:meth:`tomoprox.abc.Solver.fit`.
    """

    default_config = tpc.SolverConfig(max_iter=10_000, adaptive_step_size=True)
    _safety = 0.99
    _solution_var = "u"
    _adaptive_support = True

    def __init__(
        self,
        A: tpt.MatrixLike,
        b: tpt.NDArray,
        lam: tpt.Real = 1,
        **kwargs,
    ):
        A = tpo.as_linop(A)
        b = _as_data(b)
        if tuple(b.shape) != A.codim_shape:
            raise tpe.ConfigurationError(f"b: expected shape {A.codim_shape}, got {b.shape}.")
        if not math.isfinite(lam):
            raise tpe.ConfigurationError(f"lam: expected finite value, got {lam}.")

        super().__init__(
            f=tpo.QuadraticLoss(b),
            h=tpo.L1Norm(dim_shape=A.dim_shape, lam=lam),
            K=A.T,
            **kwargs,
        )
        self._A = A
        self._b = b
        self._lam = lam

    def _optimality(self, x, u):
        xp = tpu.get_array_module(x)
        r = x - self._b + self._A.apply(u)
        return xp.sqrt(xp.sum(r**2))

    def _reference_array(self):
        return self._b


def _resolve_config(options, defaults: tpc.SolverConfig) -> tpc.SolverConfig:
    if isinstance(options, tpc.SolverConfig):
        return options
    return tpc.SolverConfig.from_options(options, defaults=defaults)


def _run(slvr: _PrimalDualSplitting, cfg: tpc.SolverConfig) -> tuple[tpt.NDArray, tpa.IterationHistory]:
    slvr.fit(
        stop_crit=tpst.ConvergenceMonitor.from_config(cfg),
        save_history=cfg.save_history,
        adaptive_step_size=cfg.adaptive_step_size,
    )
    return slvr.solution(), slvr.history()


def solve_tv(
    A: tpt.MatrixLike,
    b: tpt.NDArray,
    D: tpt.MatrixLike = None,
    lam: tpt.Real = 1,
    options: typ.Union[tpt.Options, tpc.SolverConfig] = None,
    **kwargs,
) -> tuple[tpt.NDArray, tpa.IterationHistory]:
    r"""
    Solve :math:`\min_{\mathbf{x}} \frac{1}{2}\Vert\mathbf{A}\mathbf{x} - \mathbf{b}\Vert_{2}^{2} + \lambda
    \Vert\mathbf{D}\mathbf{x}\Vert_{1}` with :py:class:`~tomoprox.opt.solver.TVLeastSquares`.

    Parameters
    ----------
    A: LinOp, NDArray, sparse matrix
        (M, N) forward operator.
    b: NDArray
        (M,) data.
    D: LinOp, NDArray, sparse matrix, None
        (P, N) regularization operator.  Identity if unspecified.
    lam: Real
        Regularization parameter.
    options: ~collections.abc.Mapping, SolverConfig
        Run configuration, see :py:meth:`~tomoprox.opt.config.SolverConfig.from_options`.  Defaults:
        ``max_iter=1000``, ``opt_tol=1e-6``, ``prog_tol=1e-6``, ``save_history=False``.
    kwargs
        Keyword parameters passed on to :py:meth:`tomoprox.abc.Solver.__init__` (``folder``, ``show_progress``, ...).

    Returns
    -------
    x: NDArray
        (N,) solution.
    hist: IterationHistory
        Per-iteration ``er``, ``opt`` (and ``f``, ``g``, ``cost`` if requested) plus convergence status.
    """
    cfg = _resolve_config(options, TVLeastSquares.default_config)
    slvr = TVLeastSquares(A, b, D, lam, **kwargs)
    return _run(slvr, cfg)


def solve_dual(
    A: tpt.MatrixLike,
    b: tpt.NDArray,
    lam: tpt.Real = 1,
    options: typ.Union[tpt.Options, tpc.SolverConfig] = None,
    **kwargs,
) -> tuple[tpt.NDArray, tpa.IterationHistory]:
    r"""
    Solve :math:`\min_{\mathbf{x}} \frac{1}{2}\Vert\mathbf{x} - \mathbf{b}\Vert_{2}^{2} + \lambda
    \Vert\mathbf{A}^{T}\mathbf{x}\Vert_{1}` with :py:class:`~tomoprox.opt.solver.DualDenoising`.

    Parameters
    ----------
    A: LinOp, NDArray, sparse matrix
        (M, N) forward operator.
    b: NDArray
        (M,) data.
    lam: Real
        Regularization parameter.  (Default: 1.)
    options: ~collections.abc.Mapping, SolverConfig
        Run configuration, see :py:meth:`~tomoprox.opt.config.SolverConfig.from_options`.  Defaults:
        ``max_iter=10000``, ``opt_tol=1e-6``, ``prog_tol=1e-6``, ``save_history=False``,
        ``adaptive_step_size=True``.
    kwargs
        Keyword parameters passed on to :py:meth:`tomoprox.abc.Solver.__init__` (``folder``, ``show_progress``, ...).

    Returns
    -------
    u: NDArray
        (N,) solution, i.e. the final *dual* iterate.
    hist: IterationHistory
        Per-iteration ``er``, ``opt`` (and ``f``, ``g``, ``cost`` if requested) plus convergence status.
    """
    cfg = _resolve_config(options, DualDenoising.default_config)
    slvr = DualDenoising(A, b, lam, **kwargs)
    return _run(slvr, cfg)
