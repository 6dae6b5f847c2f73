class MotionEngineError(ValueError):
    """Base class for everything the comparison engine raises."""


class DegenerateGeometry(MotionEngineError):
    """A joint angle is undefined for the given landmarks."""


class OutOfOrderSample(MotionEngineError):
    """A sample's timestamp does not advance past the last one recorded."""


class InsufficientData(MotionEngineError):
    """Too few samples or frames to run a comparison."""


class DimensionMismatch(MotionEngineError):
    """Angle vectors do not share one joint ordering and length."""
