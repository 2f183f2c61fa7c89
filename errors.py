"""Exception types raised by the estimation engine."""


class EstimationError(Exception):
    """Base class for every error the engine raises on purpose."""


class ShapeDefinitionError(EstimationError, ValueError):
    """A shape definition breaks one of its invariants."""


class UnknownShapeError(EstimationError, KeyError):
    """A shape reference could not be resolved (strict registries only)."""


class UnsupportedDiameterError(EstimationError, KeyError):
    """A bar diameter has no entry in the unit weight table (strict mode only)."""


class FormulaError(EstimationError, ValueError):
    """A legacy shape formula could not be parsed or evaluated."""


class InvalidScrapError(EstimationError, ValueError):
    """A scrap stock declaration has a non-positive length or quantity."""
