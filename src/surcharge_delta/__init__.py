"""surcharge-delta — Turn payor agreement price updates into dated change feeds."""

__version__ = "0.2.0"

TRACKED_COLUMN: str = "SURCHARGEMULTIPLIER"
ACTIVE_TO_COLUMN: str = "ACTIVETO"
ACTIVE_FROM_COLUMN: str = "ACTIVEFROM"

from surcharge_delta.compare import compare_datasets  # noqa: E402
from surcharge_delta.compose import compose_output  # noqa: E402
from surcharge_delta.io import load_dataset, save_dataset  # noqa: E402

__all__ = [
    "ACTIVE_FROM_COLUMN",
    "ACTIVE_TO_COLUMN",
    "TRACKED_COLUMN",
    "__version__",
    "compare_datasets",
    "compose_output",
    "load_dataset",
    "save_dataset",
]
