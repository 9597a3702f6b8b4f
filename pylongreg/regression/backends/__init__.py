"""
Logistic regression backends.

Available backends:
    CPUIRLSBackend: IRLS with a pivoted QR solve per iteration
"""

from pylongreg.regression.backends.cpu_glm import CPUIRLSBackend

__all__ = [
    "CPUIRLSBackend",
]
