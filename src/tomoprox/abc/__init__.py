from .operator import (
    LinOp as LinOp,
    Operator as Operator,
    ProxFunc as ProxFunc,
)
from .solver import (
    ConvergenceStatus as ConvergenceStatus,
    IterationHistory as IterationHistory,
    Solver as Solver,
    SolverMode as SolverMode,
    StoppingCriterion as StoppingCriterion,
)
