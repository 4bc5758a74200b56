from .config import (
    SolverConfig as SolverConfig,
)
from .step import (
    FixedStep as FixedStep,
    SpectralStep as SpectralStep,
    StepSizeController as StepSizeController,
)
from .stop import (
    AbsError as AbsError,
    ConvergenceMonitor as ConvergenceMonitor,
    MaxIter as MaxIter,
    Memorize as Memorize,
    iterate_progress as iterate_progress,
)
from .solver import (
    DualDenoising as DualDenoising,
    TVLeastSquares as TVLeastSquares,
    solve_dual as solve_dual,
    solve_tv as solve_tv,
)
