"""
Linear algebra kernels for PyMultilevel.

All functions follow these conventions:
    - NumPy/SciPy (LAPACK under the hood)
    - Each operation returns a structured result dataclass
    - Errors are raised immediately with clear messages

Submodules:
    qr: QR decomposition and QR least squares
"""

from pymultilevel.core.compute.linalg.qr import (
    QRResult,
    qr_cpu,
    qr_solve,
)

__all__ = [
    "QRResult",
    "qr_cpu",
    "qr_solve",
]
