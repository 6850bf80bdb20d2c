class ObstacleDetectionError(Exception):
    """Base class for errors raised by the obstacle detection pipeline."""


class InsufficientPointsError(ObstacleDetectionError, ValueError):
    """
    A cloud has fewer points than an operation needs
    (3 for a plane, 2 for a line, 1 for a bounding box).
    """

    def __init__(self, required: int, actual: int, operation: str = "operation"):
        super().__init__(f"{operation} needs at least {required} points, got {actual}")
        self.required = required
        self.actual = actual
        self.operation = operation


class EmptyClusterError(ObstacleDetectionError, AssertionError):
    """A bounding box was requested for a cluster with no points."""
