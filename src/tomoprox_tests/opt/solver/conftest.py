import numpy as np
import pytest

import tomoprox.abc as tpa
import tomoprox.info.exception as tpe
import tomoprox.info.ptype as tpt
import tomoprox.opt.stop as tpst
import tomoprox.util as tpu


class SolverT:
    # Helper Functions --------------------------------------------------------
    @staticmethod
    def _check_allclose(nd_1: dict, nd_2: dict) -> bool:
        same_keys = set(nd_1.keys()) == set(nd_2.keys())
        if not same_keys:
            return False

        stats = dict()
        for k in nd_1.keys():
            stats[k] = np.allclose(
                tpu.to_NUMPY(nd_1[k]),
                tpu.to_NUMPY(nd_2[k]),
            )
        return all(stats.values())

    @staticmethod
    def as_early_stop(kwargs: dict, n: int = 5) -> dict:
        # Some tests look at state which does not require a solver to have converged
        # (mathematically).
        # This function adds a max-iter constraint to the kwargs_fit() dictionary to drastically
        # curb test time.
        kwargs = kwargs.copy()
        kwargs["stop_crit"] = tpst.MaxIter(n=n)
        return kwargs

    # Fixtures ----------------------------------------------------------------
    @pytest.fixture
    def spec(self) -> tuple[tpt.SolverC, dict, dict]:
        # override in subclass to return:
        # * the solver (class) to test;
        # * the solver-specific kwargs to pass to __init__().
        # * the solver-specific kwargs to pass to fit().
        raise NotImplementedError

    @pytest.fixture
    def solver_klass(self, spec) -> tpt.SolverC:
        return spec[0]

    @pytest.fixture
    def kwargs_init(self, spec) -> dict:
        kwargs = spec[1]
        kwargs.update(show_progress=False)
        return kwargs

    @pytest.fixture
    def kwargs_fit(self, spec) -> dict:
        return spec[2]

    @pytest.fixture
    def solver(self, solver_klass, kwargs_init) -> tpt.SolverT:
        # Solver instance used for most fit() tests.
        slvr = solver_klass(**kwargs_init)
        return slvr

    # Tests -------------------------------------------------------------------
    def test_transparent_fit(self, solver, kwargs_fit):
        # Running solver twice returns same results.
        kw_fit = self.as_early_stop(kwargs_fit)

        solver.fit(**kw_fit.copy())
        data1, _ = solver.stats()
        solver.fit(**kw_fit.copy())
        data2, _ = solver.stats()

        assert self._check_allclose(data1, data2)

    def test_logged_variables(self, solver, kwargs_fit):
        solver.fit(**self.as_early_stop(kwargs_fit))
        data, _ = solver.stats()
        assert set(data.keys()) == {"x", "u"}
        assert data["x"].shape == solver._K.dim_shape
        assert data["u"].shape == solver._K.codim_shape

    @pytest.mark.parametrize("n", [1, 7])
    def test_one_record_per_iteration(self, solver, kwargs_fit, n):
        kw_fit = kwargs_fit.copy()
        kw_fit.update(stop_crit=tpst.ConvergenceMonitor(opt_tol=0, prog_tol=0, max_iter=n))
        solver.fit(**kw_fit)
        hist = solver.history()

        assert len(hist) == n
        assert np.array_equal(hist["iteration"], np.arange(1, n + 1))
        assert hist.status is tpa.ConvergenceStatus.MAX_ITER
        assert not hist.converged

    @pytest.mark.parametrize("save_history", [True, False])
    def test_history_fields(self, solver, kwargs_fit, save_history):
        kw_fit = kwargs_fit.copy()
        kw_fit.update(
            stop_crit=tpst.ConvergenceMonitor(opt_tol=0, prog_tol=0, max_iter=5),
            save_history=save_history,
        )
        solver.fit(**kw_fit)
        hist = solver.history()

        assert {"er", "opt"} <= set(hist.fields)
        if save_history:
            assert {"f", "g", "cost"} <= set(hist.fields)
            assert np.array_equal(hist["cost"], hist["f"] + hist["g"])
            assert np.all(hist["f"] >= 0) and np.all(hist["g"] >= 0)
        else:
            assert "cost" not in hist
            with pytest.raises(KeyError):
                hist["cost"]

    def test_history_finite(self, solver, kwargs_fit):
        solver.fit(**self.as_early_stop(kwargs_fit))
        _, history = solver.stats()
        for k in history.dtype.names:
            assert np.all(np.isfinite(history[k]))

    def test_stop_crit_reusable(self, solver, kwargs_fit):
        sc = tpst.ConvergenceMonitor(max_iter=4)
        kw_fit = kwargs_fit.copy()
        kw_fit.update(stop_crit=sc)

        solver.fit(**kw_fit)
        n1 = solver.history().n_iter
        solver.fit(**kw_fit)
        n2 = solver.history().n_iter
        assert n1 == n2

    def test_manual_mode(self, solver, kwargs_fit):
        kw_fit = self.as_early_stop(kwargs_fit, n=4)
        kw_fit.update(mode=tpa.SolverMode.MANUAL)
        solver.fit(**kw_fit)

        data = [d for d in solver.steps()]
        assert len(data) == 4
        assert all(set(d.keys()) == {"x", "u"} for d in data)
        assert solver.history().n_iter == 4

        with pytest.raises(ValueError):
            next(solver.steps())  # generator exhausted -> call-once

    def test_manual_mode_partial(self, solver, kwargs_fit):
        kw_fit = self.as_early_stop(kwargs_fit, n=10)
        kw_fit.update(mode=tpa.SolverMode.MANUAL)
        solver.fit(**kw_fit)

        data = [d for d in solver.steps(n=3)]
        assert len(data) == 3
        assert solver.status is None  # still running
        data = [d for d in solver.steps()]
        assert len(data) == 7
        assert solver.status is tpa.ConvergenceStatus.MAX_ITER

    def test_steps_requires_manual(self, solver):
        with pytest.raises(ValueError):
            next(solver.steps())

    def test_logfile(self, solver_klass, kwargs_init, kwargs_fit, tmp_path):
        kwargs = kwargs_init.copy()
        kwargs.update(folder=tmp_path / "slvr", verbosity=2)
        solver = solver_klass(**kwargs)
        solver.fit(**self.as_early_stop(kwargs_fit, n=4))

        assert solver.workdir == (tmp_path / "slvr").resolve()
        log = solver.logfile.read_text()
        assert "Iteration 2" in log
        assert "-> END" in log

    def test_folder_exists(self, solver_klass, kwargs_init, tmp_path):
        kwargs = kwargs_init.copy()
        kwargs.update(folder=tmp_path)
        with pytest.raises(FileExistsError):
            solver_klass(**kwargs)

    def test_divergence(self, solver, kwargs_fit):
        kw_fit = self.as_early_stop(kwargs_fit)
        kw_fit.update(x0=np.full(solver._K.dim_shape, np.nan))
        with pytest.raises(tpe.NumericalDivergenceError) as excinfo:
            solver.fit(**kw_fit)
        assert excinfo.value.iteration == 1

    @pytest.mark.parametrize("var", ["x0", "u0"])
    def test_initial_point_mismatch(self, solver, kwargs_fit, var):
        kw_fit = self.as_early_stop(kwargs_fit)
        kw_fit.update({var: np.zeros(1_000)})
        with pytest.raises(tpe.ConfigurationError):
            solver.fit(**kw_fit)

    @pytest.mark.parametrize("step", [0, -1, np.inf])
    def test_invalid_step(self, solver, kwargs_fit, step):
        kw_fit = self.as_early_stop(kwargs_fit)
        kw_fit.update(tau=step)
        with pytest.raises(tpe.ConfigurationError):
            solver.fit(**kw_fit)

    def test_warm_start(self, solver, kwargs_fit):
        # Restarting from the last iterates continues the run.
        kw_fit = self.as_early_stop(kwargs_fit, n=10)
        solver.fit(**kw_fit)
        data_ref, _ = solver.stats()

        solver.fit(**self.as_early_stop(kwargs_fit, n=5))
        data, _ = solver.stats()
        kw_fit = self.as_early_stop(kwargs_fit, n=5)
        kw_fit.update(x0=data["x"], u0=data["u"])
        solver.fit(**kw_fit)
        data_warm, _ = solver.stats()

        assert self._check_allclose(data_ref, data_warm)
