import typing

import numpy as np
from scipy.sparse import csr_array, csr_matrix
from typing_extensions import TypeAlias

__all__ = [
    "OneDimension",
    "OneDimensionalGrid",
    "SparseMatrix",
    "StepSize",
]

OneDimension: TypeAlias = typing.Tuple[int]
"""1D index"""

OneDimensionalGrid = np.ndarray[OneDimension, np.dtype[np.floating]]
"""1D grid type for primary variables, represented as a 1D NumPy array of floats"""

SparseMatrix: TypeAlias = typing.Union[csr_matrix, csr_array]
"""Sparse matrix type accepted for Jacobians"""

StepSize: TypeAlias = float
"""A positive time step size in seconds"""
