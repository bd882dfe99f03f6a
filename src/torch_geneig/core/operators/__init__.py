"""Matrix operators consumed by generalized eigensolvers.

This module provides:
- SymmetricOperator: abstract {shape, mat_prod, solve} interface for B.
- RegularInverseOperator: sparse SPD B with CG-based inverse products.
"""

from .base import SymmetricOperator
from .regular_inverse import RegularInverseOperator

__all__ = [
    "RegularInverseOperator",
    "SymmetricOperator",
]
