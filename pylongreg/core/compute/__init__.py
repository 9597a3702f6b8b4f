"""
Compute infrastructure: timing, tolerances, linear algebra and
numerical derivative helpers shared by the fitters.
"""

from pylongreg.core.compute.timing import Timer
from pylongreg.core.compute.tolerances import (
    FitControl,
    LIKELIHOOD_CONTROL,
    IRLS_CONTROL,
)
from pylongreg.core.compute.satterthwaite import (
    SatterthwaiteApprox,
    build_satterthwaite,
)

__all__ = [
    "Timer",
    "FitControl",
    "LIKELIHOOD_CONTROL",
    "IRLS_CONTROL",
    "SatterthwaiteApprox",
    "build_satterthwaite",
]
