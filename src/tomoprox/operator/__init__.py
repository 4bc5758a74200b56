from .prox import (
    prox_l1 as prox_l1,
    prox_l1_dual as prox_l1_dual,
    prox_quadratic_data as prox_quadratic_data,
    prox_quadratic_data_simple as prox_quadratic_data_simple,
)
from .func import (
    L1Norm as L1Norm,
    LinearizedLeastSquares as LinearizedLeastSquares,
    QuadraticLoss as QuadraticLoss,
)
from .linop import (
    ExplicitLinOp as ExplicitLinOp,
    FiniteDifference as FiniteDifference,
    IdentityOp as IdentityOp,
    as_linop as as_linop,
    from_sciop as from_sciop,
)
