import collections.abc as cabc
import dataclasses
import math

import tomoprox.info.exception as tpe
import tomoprox.info.ptype as tpt

__all__ = [
    "SolverConfig",
]

#: Option names accepted as aliases of :py:class:`SolverConfig` fields.
OPTION_ALIASES = {
    "maxIter": "max_iter",
    "optTol": "opt_tol",
    "progTol": "prog_tol",
    "saveHist": "save_history",
    "saveHistory": "save_history",
    "updateGamma": "adaptive_step_size",
    "adaptiveStepSize": "adaptive_step_size",
}


@dataclasses.dataclass(frozen=True)
class SolverConfig:
    """
    Run-time configuration of primal-dual solvers.

    Attributes
    ----------
    max_iter: Integer
        Maximum number of iterations (>= 1).
    opt_tol: Real
        Stop when the optimality residual falls strictly below this value (>= 0).
    prog_tol: Real
        Stop when the iterate progress falls strictly below this value (>= 0).
    save_history: bool
        Record data-fidelity, penalty and total cost values at every iteration.
    adaptive_step_size: bool
        Use spectral (Barzilai-Borwein) step sizes.  Only meaningful for
        :py:class:`~tomoprox.opt.solver.DualDenoising`.
    """

    max_iter: int = 1000
    opt_tol: float = 1e-6
    prog_tol: float = 1e-6
    save_history: bool = False
    adaptive_step_size: bool = False

    def __post_init__(self):
        try:
            assert not isinstance(self.max_iter, bool)
            assert int(self.max_iter) == self.max_iter
            assert self.max_iter >= 1
            object.__setattr__(self, "max_iter", int(self.max_iter))
        except Exception:
            raise tpe.ConfigurationError(f"max_iter: expected positive integer, got {self.max_iter}.")

        for name in ("opt_tol", "prog_tol"):
            value = getattr(self, name)
            try:
                assert isinstance(value, tpt.Real) and not isinstance(value, bool)
                assert not math.isnan(value)
                assert value >= 0
                object.__setattr__(self, name, float(value))
            except Exception:
                raise tpe.ConfigurationError(f"{name}: expected non-negative real, got {value}.")

        object.__setattr__(self, "save_history", bool(self.save_history))
        object.__setattr__(self, "adaptive_step_size", bool(self.adaptive_step_size))

    @classmethod
    def from_options(
        cls,
        options: tpt.Options = None,
        defaults: "SolverConfig" = None,
        **kwargs,
    ) -> "SolverConfig":
        """
        Resolve an option bag against defaults.

        Parameters
        ----------
        options: ~collections.abc.Mapping
            Option overrides.  Field names and their aliases (``maxIter``, ``optTol``, ``progTol``, ``saveHist``,
            ``saveHistory``, ``updateGamma``, ``adaptiveStepSize``) are understood.  Unknown names are ignored.
        defaults: SolverConfig
            Values used for options which are not provided.  (Default: ``SolverConfig()``.)
        kwargs
            Extra overrides, taking precedence over `options`.

        Returns
        -------
        cfg: SolverConfig
        """
        if defaults is None:
            defaults = cls()
        if options is None:
            options = dict()
        elif not isinstance(options, cabc.Mapping):
            raise tpe.ConfigurationError(f"options: expected mapping, got {type(options)}.")

        fields = {f.name for f in dataclasses.fields(cls)}
        overrides = dict()
        for k, v in {**options, **kwargs}.items():
            name = OPTION_ALIASES.get(k, k)
            if name in fields:
                overrides[name] = v
        return dataclasses.replace(defaults, **overrides)
