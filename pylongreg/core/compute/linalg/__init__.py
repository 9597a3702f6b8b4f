"""
Linear algebra primitives shared by the fitters.
"""

from pylongreg.core.compute.linalg.qr import (
    QRResult,
    qr_cpu,
    qr_solve,
    check_full_rank,
)
from pylongreg.core.compute.linalg.blocks import (
    BlockGLS,
    block_gls,
    cholesky_block,
    profiled_log_likelihood,
    deviance_at_sigma,
)

__all__ = [
    "QRResult",
    "qr_cpu",
    "qr_solve",
    "check_full_rank",
    "BlockGLS",
    "block_gls",
    "cholesky_block",
    "profiled_log_likelihood",
    "deviance_at_sigma",
]
