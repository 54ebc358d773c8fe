"""
Regression backends.

Available backends:
    CPUIRLSBackend: IRLS with QR inner solve for logistic regression
"""

from pymultilevel.regression.backends.cpu_glm import CPUIRLSBackend

__all__ = [
    "CPUIRLSBackend",
]
