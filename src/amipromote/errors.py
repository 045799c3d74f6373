"""Promotion error taxonomy.

Every error here is fatal for the invocation that raises it and is raised
before the first mutating call. Missing optional infrastructure (no launch
template, no Auto Scaling Group) is not an error; those lookups return None.
A declined confirmation is not an error either.
"""


class PromotionError(Exception):
    """Base exception for promotion and rollback failures."""

    exit_code = 1


class InvalidEnvironment(PromotionError):
    """Raised when the environment name is missing or unknown."""

    pass


class NoImageFound(PromotionError):
    """Raised when no available image is tagged for the environment."""

    pass


class ImageNotAvailable(PromotionError):
    """Raised when an image does not exist or is not in the available state."""

    def __init__(self, image_id: str, state: str | None = None):
        self.image_id = image_id
        self.state = state
        if state is None:
            message = f"Image {image_id} not found"
        else:
            message = f"Image {image_id} is not available (state: {state})"
        super().__init__(message)


class InvalidRollbackTarget(PromotionError):
    """Raised when the rollback target is the image currently in production."""

    pass


class NoPreviousImage(PromotionError):
    """Raised when fewer than two available images exist for a rollback."""

    pass


class NoCurrentImage(PromotionError):
    """Raised when no image is marked as the current production image."""

    pass


class EmptyReason(PromotionError):
    """Raised when a rollback is attempted without a reason."""

    pass


class AmbiguousResourceError(PromotionError):
    """Raised when an Environment tag filter matches more than one resource."""

    pass


class LeaseUnavailable(PromotionError):
    """Raised when another promotion holds the environment lease."""

    pass


class SelectionChanged(PromotionError):
    """Raised when another promotion changed the selected images while waiting for the lease."""

    pass


__all__ = [
    "AmbiguousResourceError",
    "EmptyReason",
    "ImageNotAvailable",
    "InvalidEnvironment",
    "InvalidRollbackTarget",
    "LeaseUnavailable",
    "NoCurrentImage",
    "NoImageFound",
    "NoPreviousImage",
    "PromotionError",
    "SelectionChanged",
]
