"""Error types raised across the tile-world engine."""

from __future__ import annotations


class TileWorldError(RuntimeError):
    """Base class for engine errors."""


class ConfigurationInvalid(TileWorldError):
    """Raised when configuration sections or the module graph cannot be used."""


class OutOfBounds(TileWorldError):
    """Raised when an operation that requires a world position gets one outside the bounds."""

    def __init__(self, x: int, y: int) -> None:
        super().__init__(f"Position ({x}, {y}) is outside world bounds")
        self.x = x
        self.y = y


class ModuleGenerationFailure(TileWorldError):
    """Raised when a terrain module fails to generate; previously committed fields stay in place."""

    def __init__(self, module: str, cause: BaseException) -> None:
        super().__init__(f"Terrain module '{module}' failed to generate: {type(cause).__name__}: {cause}")
        self.module = module
        self.cause = cause
