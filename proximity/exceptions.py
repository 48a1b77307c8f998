"""Exception classes for cell proximity analysis."""
from typing import Iterable, Optional


class ProximityError(Exception):
    """Base exception for all proximity-analysis errors."""


class MissingDataError(ProximityError):
    """Raised when a requested phenotype has no matching cells."""

    def __init__(self, phenotype: Optional[str] = None):
        msg = f"No cells found for phenotype: {phenotype}" if phenotype else "No cells found"
        super().__init__(msg)
        self.phenotype = phenotype


class MalformedMaskError(ProximityError):
    """Raised when a cell in the table has no pixels in the nucleus map."""

    def __init__(self, cell_id: Optional[int] = None):
        msg = f"Nucleus not found in mask for cell {cell_id}" if cell_id is not None else "Nucleus not found in mask"
        super().__init__(msg)
        self.cell_id = cell_id


class MissingAssetError(ProximityError):
    """Raised when a required mask or composite image file is absent."""

    def __init__(self, path: Optional[str] = None, what: str = "Required file"):
        msg = f"{what} not found: {path}" if path else f"{what} not found"
        super().__init__(msg)
        self.path = path


class InvalidConfigurationError(ProximityError):
    """Raised when phenotypes, pairs or rules are inconsistent."""

    def __init__(self, message: str, names: Optional[Iterable[str]] = None):
        self.names = sorted(names) if names else []
        if self.names:
            message = f"{message}: {', '.join(self.names)}"
        super().__init__(message)
