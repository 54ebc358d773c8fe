"""
Shared compute infrastructure for PyMultilevel.

This module provides timing utilities, tolerance tiers and linear algebra
kernels that are shared across the regression and mixed-model code.

Submodules:
    timing: Execution timing and wall-clock budgets
    tolerances: Named tolerance tiers for numerical comparison
    linalg: Linear algebra kernels (QR)
"""

from pymultilevel.core.compute.timing import Timer, Deadline

__all__ = [
    "Timer",
    "Deadline",
]
