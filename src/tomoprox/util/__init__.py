from .array_module import (
    compute as compute,
    get_array_module as get_array_module,
    to_float as to_float,
    to_NUMPY as to_NUMPY,
)
