import collections.abc as cabc
import datetime as dt
import enum
import logging
import operator
import pathlib as plib
import shutil
import sys
import tempfile
import typing as typ

import numpy as np

import tomoprox.info.exception as tpe
import tomoprox.info.ptype as tpt
import tomoprox.util as tpu

__all__ = [
    "ConvergenceStatus",
    "IterationHistory",
    "SolverMode",
    "Solver",
    "StoppingCriterion",
]


@enum.unique
class SolverMode(enum.Enum):
    """
    Solver execution mode.
    """

    BLOCK = enum.auto()
    MANUAL = enum.auto()


@enum.unique
class ConvergenceStatus(enum.Enum):
    """
    Reason why a solver stopped.
    """

    OPTIMALITY = enum.auto()  #: optimality residual fell below its tolerance.
    PROGRESS = enum.auto()  #: iterate progress fell below its tolerance.
    MAX_ITER = enum.auto()  #: iteration budget exhausted before convergence.
    STOPPED = enum.auto()  #: user-defined criterion fired.

    @property
    def converged(self) -> bool:
        return self in (ConvergenceStatus.OPTIMALITY, ConvergenceStatus.PROGRESS)


class StoppingCriterion:
    """
    State machines (SM) which decide when to stop iterative solvers by examining their mathematical state.

    SM decisions are always accompanied by at least one numerical statistic. These stats may be queried by solvers via
    :py:meth:`~tomoprox.abc.StoppingCriterion.info` to provide diagnostic information to users.

    Composite stopping criteria can be implemented via the overloaded (and[``&``], or[``|``]) operators.
    """

    def stop(self, state: cabc.Mapping[str]) -> bool:
        """
        Compute a stop signal based on the current mathematical state.

        Parameters
        ----------
        state: ~collections.abc.Mapping
            Full mathematical state of solver at some iteration, i.e. :py:attr:`~tomoprox.abc.Solver._mstate`.

            Values from `state` may be cached inside the instance to form complex stopping conditions.

        Returns
        -------
        s: bool
            True if no further iterations should be performed, False otherwise.
        """
        raise NotImplementedError

    def info(self) -> cabc.Mapping[str, float]:
        """
        Get statistics associated with the last call to :py:meth:`~tomoprox.abc.StoppingCriterion.stop`.

        Returns
        -------
        data: ~collections.abc.Mapping
        """
        raise NotImplementedError

    def status(self) -> typ.Optional[ConvergenceStatus]:
        """
        Reason associated with the last positive stop decision, if the criterion can tell.
        """
        return None

    def clear(self):
        """
        Clear SM state (if any).

        This method is useful when a :py:class:`~tomoprox.abc.StoppingCriterion` instance must be reused in another call
        to :py:meth:`~tomoprox.abc.Solver.fit`.
        """
        pass

    def __or__(self, other: "StoppingCriterion") -> "StoppingCriterion":
        return _StoppingCriteriaComposition(lhs=self, rhs=other, op=operator.or_)

    def __and__(self, other: "StoppingCriterion") -> "StoppingCriterion":
        return _StoppingCriteriaComposition(lhs=self, rhs=other, op=operator.and_)


class _StoppingCriteriaComposition(StoppingCriterion):
    def __init__(
        self,
        lhs: "StoppingCriterion",
        rhs: "StoppingCriterion",
        op: cabc.Callable[[bool, bool], bool],
    ):
        self._lhs = lhs
        self._rhs = rhs
        self._op = op

    def stop(self, state: cabc.Mapping) -> bool:
        return self._op(self._lhs.stop(state), self._rhs.stop(state))

    def info(self) -> cabc.Mapping[str, float]:
        return {**self._lhs.info(), **self._rhs.info()}

    def status(self) -> typ.Optional[ConvergenceStatus]:
        s = self._lhs.status()
        return s if (s is not None) else self._rhs.status()

    def clear(self):
        self._lhs.clear()
        self._rhs.clear()


class IterationHistory:
    """
    Per-iteration statistics of a solver run.

    Records are stored in a NumPy structured array with one row per completed iteration (in iteration order).  Fields
    are accessed by name:

    .. code-block:: python3

       hist["opt"]   # (N_iter,) optimality residuals
       hist["er"]    # (N_iter,) iterate progress
       hist.status   # ConvergenceStatus
    """

    def __init__(
        self,
        records: typ.Optional[np.ndarray],
        status: typ.Optional[ConvergenceStatus],
    ):
        if records is None:
            records = np.zeros(0, dtype=[("iteration", np.int64)])
        self._records = records
        self._status = status

    @property
    def status(self) -> typ.Optional[ConvergenceStatus]:
        return self._status

    @property
    def converged(self) -> bool:
        return (self._status is not None) and self._status.converged

    @property
    def fields(self) -> tuple[str, ...]:
        return self._records.dtype.names

    @property
    def n_iter(self) -> int:
        return len(self._records)

    def as_array(self) -> np.ndarray:
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, field: str) -> bool:
        return field in self.fields

    def __getitem__(self, field: str) -> np.ndarray:
        try:
            return self._records[field]
        except (KeyError, ValueError):
            raise KeyError(f"Unknown history field {field}: expected one of {self.fields}.")

    def __repr__(self) -> str:
        status = None if (self._status is None) else self._status.name
        return f"IterationHistory(n_iter={self.n_iter}, status={status}, fields={self.fields})"


class Solver:
    r"""
    Iterative solver for minimization problems of the form :math:`\hat{x} = \arg\min_{x} \mathcal{F}(x)`, where the
    form of :math:`\mathcal{F}` is solver-dependent.

    Solver provides a versatile API for solving optimisation problems, with the following features:

    * manual/automatic execution of solver iterations via parameters provided to :py:meth:`~tomoprox.abc.Solver.fit`.
      (See below.)
    * per-instance log file: each solver instance logs its progress to a folder on disk for post-analysis.
    * arbitrary specification of complex stopping criteria via the :py:class:`~tomoprox.abc.StoppingCriterion` class.
    * iteration history recorded in memory, one record per completed iteration.

    To implement a new iterative solver, users need to sub-class :py:class:`~tomoprox.abc.Solver` and overwrite the
    methods below:

    * :py:meth:`~tomoprox.abc.Solver.__init__`
    * :py:meth:`~tomoprox.abc.Solver.m_init`  [i.e. math-init()]
    * :py:meth:`~tomoprox.abc.Solver.m_step`  [i.e. math-step()]
    * :py:meth:`~tomoprox.abc.Solver.default_stop_crit`  [optional; see method definition for details]
    * :py:meth:`~tomoprox.abc.Solver.objective_terms`  [optional; see method definition for details]

    Examples
    --------
    .. code-block:: python3

       slvr = Solver()

       ### 1. Blocking mode: .fit() does not return until solver has stopped.
       >>> slvr.fit(mode=SolverMode.BLOCK, ...)
       >>> data, hist = slvr.stats()  # final output of solver.

       ### 2. Manual mode: fine-grain control of solver data per iteration.
       >>> slvr.fit(mode=SolverMode.MANUAL, ...)
       >>> for data in slvr.steps():
       ...     # Do something with the logged variables after each iteration.
       ...     pass  # solver has stopped after the loop.
       >>> data, hist = slvr.stats()  # final output of solver.
    """

    _mstate: dict[str, typ.Any]  #: Mathematical state.
    _astate: dict[str, typ.Any]  #: Book-keeping (non-math) state.

    def __init__(
        self,
        *,
        folder: tpt.Path = None,
        exist_ok: bool = False,
        verbosity: tpt.Integer = None,
        show_progress: bool = True,
        log_var: tpt.VarName = frozenset(),
    ):
        """
        Parameters
        ----------
        folder: Path
            Directory on disk where instance data should be stored.  A location will be automatically chosen if
            unspecified. (Default: OS-dependent tempdir.)
        exist_ok: bool
            If `folder` is specified and `exist_ok` is false (default), :py:class:`FileExistsError` is raised if the
            target directory already exists.
        verbosity: Integer
            Rate at which iteration statistics are logged.  If `None` (default), only the final report is logged.
        show_progress: bool
            If True (default) and :py:meth:`~tomoprox.abc.Solver.fit` is run with mode=BLOCK, then statistics are also
            logged to stdout.
        log_var: VarName
            Variables from the solver's math-state (:py:attr:`~tomoprox.abc.Solver._mstate`) made available when
            calling :py:meth:`~tomoprox.abc.Solver.stats`.  These variables must hold arrays: they are checked for
            non-finite values after every iteration.
        """
        self._mstate = dict()
        self._astate = dict(
            history=None,  # stopping criteria values per iteration
            idx=0,  # iteration index
            log_rate=None,
            log_var=None,
            logger=None,
            save_history=None,
            status=None,
            stdout=None,
            stop_crit=None,
            workdir=None,
            mode=None,
        )

        if folder is None:
            folder = plib.Path(tempfile.mkdtemp(prefix="tomoprox_"))
        else:
            try:
                folder = plib.Path(folder).expanduser().resolve()
            except Exception:
                raise ValueError(f"folder: expected path-like, got {type(folder)}.")
            if folder.exists() and (not exist_ok):
                raise FileExistsError(f"{folder} already exists.")
            shutil.rmtree(folder, ignore_errors=True)
            folder.mkdir(parents=True)
        self._astate["workdir"] = folder

        try:
            if verbosity is not None:
                assert int(verbosity) >= 1
                verbosity = int(verbosity)
            self._astate["log_rate"] = verbosity
            self._astate["stdout"] = bool(show_progress)
        except Exception:
            raise ValueError(f"verbosity must be None or a positive integer, got {verbosity}.")

        try:
            if isinstance(log_var, str):
                log_var = (log_var,)
            self._astate["log_var"] = frozenset(log_var)
        except Exception:
            raise ValueError(f"log_var: expected collection, got {type(log_var)}.")

    def fit(self, **kwargs):
        r"""
        Solve minimization problem(s) defined in :py:meth:`~tomoprox.abc.Solver.__init__`, with the provided
        run-specifc parameters.

        Parameters
        ----------
        kwargs
            See class-level docstring for class-specific keyword parameters.
        stop_crit: StoppingCriterion
            Stopping criterion to end solver iterations.  If unspecified, defaults to
            :py:meth:`~tomoprox.abc.Solver.default_stop_crit`.
        mode: SolverMode
            Execution mode.
            See :py:class:`~tomoprox.abc.Solver` for usage examples.
        save_history: bool
            Evaluate the objective function terms after every iteration and record them in the history.
        """
        self._fit_init(
            mode=kwargs.pop("mode", SolverMode.BLOCK),
            stop_crit=kwargs.pop("stop_crit", None),
            save_history=kwargs.pop("save_history", False),
        )
        try:
            self.m_init(**kwargs)
        except Exception:
            self._astate["mode"] = None
            self._cleanup_logger()
            raise
        self._fit_run()

    def m_init(self, **kwargs):
        """
        Set solver's initial mathematical state based on kwargs provided to :py:meth:`~tomoprox.abc.Solver.fit`.

        This method must only manipulate :py:attr:`~tomoprox.abc.Solver._mstate`.

        After calling this method, the solver must be able to complete its 1st iteration via a call to
        :py:meth:`~tomoprox.abc.Solver.m_step`.
        """
        raise NotImplementedError

    def m_step(self):
        """
        Perform one (mathematical) step.

        This method must only manipulate :py:attr:`~tomoprox.abc.Solver._mstate`.
        """
        raise NotImplementedError

    def steps(self, n: tpt.Integer = None) -> cabc.Generator:
        """
        Generator of logged variables after each iteration.

        The i-th call to :py:func:`next` on this object returns the logged variables after the i-th solver iteration.

        This method is only usable after calling :py:meth:`~tomoprox.abc.Solver.fit` with mode=MANUAL.

        Parameters
        ----------
        n: Integer
            Maximum number of :py:func:`next` calls allowed before exhausting the generator.  Defaults to infinity if
            unspecified.

            The generator will terminate prematurely if the solver naturally stops before `n` calls to :py:func:`next`
            are made.
        """
        self._check_mode(SolverMode.MANUAL)
        i = 0
        while (n is None) or (i < n):
            try:
                must_continue = self._step()
            except Exception:
                self._astate["mode"] = None
                self._cleanup_logger()
                raise

            data, _ = self.stats()
            yield data
            i += 1
            if not must_continue:
                self._astate["mode"] = None  # force steps() to be call-once when exhausted.
                self._cleanup_logger()
                return

    _stats_data_spec = dict[str, typ.Union[tpt.Real, tpt.NDArray, None]]
    _stats_history_spec = typ.Union[np.ndarray, None]

    def stats(self) -> tuple[_stats_data_spec, _stats_history_spec]:
        """
        Query solver state.

        Returns
        -------
        data: ~collections.abc.Mapping
            Value(s) of ``log_var`` (s) after last iteration.
        history: numpy.ndarray, None
            (N_iter,) records of stopping-criteria values, one per completed iteration.

        Notes
        -----
        If any of the ``log_var`` (s) and/or ``history`` are not (yet) known at query time, ``None`` is returned.
        """
        history = self._astate["history"]
        if history is not None:
            if len(history) > 0:
                history = np.concatenate(history, axis=0)
            else:
                history = None
        data = {k: self._mstate.get(k) for k in self._astate["log_var"]}
        return data, history

    def history(self) -> IterationHistory:
        """
        Returns
        -------
        hist: IterationHistory
            Iteration records and stop reason of the last :py:meth:`~tomoprox.abc.Solver.fit` call.
        """
        _, records = self.stats()
        return IterationHistory(records, self.status)

    @property
    def status(self) -> typ.Optional[ConvergenceStatus]:
        """
        Returns
        -------
        s: ConvergenceStatus, None
            Reason why the solver stopped, or None if still running (or never run).
        """
        return self._astate["status"]

    @property
    def workdir(self) -> tpt.Path:
        """
        Returns
        -------
        wd: Path
            Absolute path to the directory on disk where instance data is stored.
        """
        return self._astate["workdir"]

    @property
    def logfile(self) -> tpt.Path:
        """
        Returns
        -------
        lf: Path
            Absolute path to the log file on disk where stopping criteria statistics are logged.
        """
        return self.workdir / "solver.log"

    def solution(self):
        """
        Output the "solution" of the optimization problem.

        This is a helper method intended for novice users.  The return type is sub-class dependent, so don't write an
        API using this: use :py:meth:`~tomoprox.abc.Solver.stats` instead.
        """
        raise NotImplementedError

    def _fit_init(
        self,
        mode: SolverMode,
        stop_crit: StoppingCriterion,
        save_history: bool,
    ):
        def _init_logger():
            log_name = str(self.workdir)
            logger = logging.getLogger(log_name)
            logger.handlers.clear()
            logger.setLevel("DEBUG")
            logger.propagate = False

            fmt = logging.Formatter(fmt="{levelname} -- {message}", style="{")
            handler = [logging.FileHandler(self.logfile, mode="w")]
            if (mode is SolverMode.BLOCK) and self._astate["stdout"]:
                handler.append(logging.StreamHandler(sys.stdout))
            for h in handler:
                h.setLevel("DEBUG")
                h.setFormatter(fmt)
                logger.addHandler(h)

            return logger

        if not isinstance(mode, SolverMode):
            raise ValueError(f"mode: expected SolverMode, got {mode}.")

        self._mstate.clear()

        if stop_crit is None:
            stop_crit = self.default_stop_crit()
        stop_crit.clear()

        if save_history:
            from tomoprox.opt.stop import Memorize

            stop_crit |= Memorize(var="f") | Memorize(var="g") | Memorize(var="cost")

        self._astate.update(  # suitable state for a new call to fit().
            history=[],
            idx=0,
            logger=_init_logger(),
            save_history=bool(save_history),
            status=None,
            stop_crit=stop_crit,
            mode=mode,
        )

    def _fit_run(self):
        self._m_persist()

        mode = self._astate["mode"]
        if mode is SolverMode.MANUAL:
            # User controls execution via steps().
            pass
        else:  # BLOCK
            try:
                while self._step():
                    pass
            finally:
                self._astate["mode"] = None
                self._cleanup_logger()

    def _check_mode(self, *modes: SolverMode):
        m = self._astate["mode"]
        if m in modes:
            pass  # ok
        else:
            if m is None:
                msg = "Illegal method call: invoke Solver.fit() first."
            else:
                msg = " ".join(
                    [
                        "Illegal method call: can only be used if Solver.fit() invoked with",
                        "mode=Any[" + ", ".join(map(lambda _: str(_.name), modes)) + "]",
                    ]
                )
            raise ValueError(msg)

    def _step(self) -> bool:
        ast = self._astate  # shorthand

        must_log = lambda: (ast["log_rate"] is not None) and (ast["idx"] % ast["log_rate"] == 0)

        def _log(msg: str = None, level: int = logging.INFO):
            if msg is None:  # report stopping-criterion values
                h = ast["history"][-1][0]
                msg = [f"[{dt.datetime.now()}] Iteration {ast['idx']:>_d}"]
                for field, value in zip(h.dtype.names[1:], tuple(h)[1:]):
                    msg.append(f"\t{field}: {value}")
                msg = "\n".join(msg)
            ast["logger"].log(level, msg)

        def _update_history():
            data = ast["stop_crit"].info()
            dtype = np.dtype([("iteration", np.int64)] + [(k, np.float64) for k in data])
            h = np.array([(ast["idx"], *data.values())], dtype=dtype)
            ast["history"].append(h)

        # stop_crit.stop(), _update_history(), _log() must always be called in this order.

        try:
            ast["idx"] += 1
            self.m_step()
            self._check_finite()
            if ast["save_history"]:
                self._mstate.update(self.objective_terms())

            must_stop = ast["stop_crit"].stop(self._mstate)
            _update_history()
            if must_stop:
                status = ast["stop_crit"].status()
                ast["status"] = ConvergenceStatus.STOPPED if (status is None) else status
                _log()
                if ast["status"] is ConvergenceStatus.MAX_ITER:
                    _log(
                        msg=f"[{dt.datetime.now()}] Completed {ast['idx']} iterations without convergence -> END",
                        level=logging.WARNING,
                    )
                else:
                    _log(msg=f"[{dt.datetime.now()}] Stopping Criterion satisfied ({ast['status'].name}) -> END")
                return False
            else:
                if must_log():
                    _log()
                self._m_persist()
                return True
        except Exception as e:
            msg = f"[{dt.datetime.now()}] Something went wrong at iteration {ast['idx']} -> EXCEPTION RAISED"
            msg_xtra = f"More information: {self.logfile}."
            print("\n".join([msg, msg_xtra]), file=sys.stderr)
            ast["logger"].exception(msg, exc_info=e)
            raise

    def _check_finite(self):
        # Fail on NaN/Inf iterates rather than iterating on them.
        for var in sorted(self._astate["log_var"]):
            x = self._mstate.get(var)
            if x is None:
                continue
            xp = tpu.get_array_module(x)
            if not bool(tpu.compute(xp.all(xp.isfinite(x)))):
                raise tpe.NumericalDivergenceError(
                    f"Non-finite values in variable {var} at iteration {self._astate['idx']}.",
                    iteration=self._astate["idx"],
                )

    def _m_persist(self):
        # Persist math state to avoid re-eval overhead.
        if len(self._mstate) == 0:
            return
        k, v = zip(*self._mstate.items())
        v = tpu.compute(*v, mode="persist", traverse=False)
        if len(k) == 1:
            v = (v,)
        self._mstate.update(zip(k, v))

    def _cleanup_logger(self):
        # Close file-handlers
        log_name = str(self.workdir)
        logger = logging.getLogger(log_name)
        for handler in logger.handlers:
            handler.close()

    def default_stop_crit(self) -> StoppingCriterion:
        """
        Default stopping criterion for solver if unspecified in :py:meth:`~tomoprox.abc.Solver.fit` calls.

        Sub-classes are expected to overwrite this method.  If not overridden, then omitting the `stop_crit` parameter
        in :py:meth:`~tomoprox.abc.Solver.fit` is forbidden.
        """
        raise NotImplementedError("No default stopping criterion defined.")

    def objective_terms(self) -> cabc.Mapping[str, float]:
        """
        Evaluate objective function terms given current math state.

        Returns
        -------
        terms: ~collections.abc.Mapping
            Scalars ``f`` (data fidelity), ``g`` (penalty) and ``cost`` (``f + g``).

        Sub-classes are expected to overwrite this method.  If not overridden, then enabling `save_history` in
        :py:meth:`~tomoprox.abc.Solver.fit` is forbidden.
        """
        raise NotImplementedError("No objective function defined.")
