"""Exception hierarchy for the image-to-MusicXML pipeline."""


class PipelineError(Exception):
    """Base exception for pipeline processing errors."""

    pass


class InputError(PipelineError):
    """Exception raised when input data is invalid."""

    pass


class ImageReadError(InputError):
    """Raised when an image file is missing, unreadable or holds no frames."""

    pass


class UnsupportedImageError(InputError):
    """Raised when no decoder understands the image content."""

    pass


class ProcessingError(PipelineError):
    """Exception raised when processing fails."""

    pass


class StaffLineCountError(ProcessingError):
    """Raised when the detected staff lines cannot be grouped into staves.

    Attributes:
        count: Number of staff lines that were detected.
    """

    def __init__(self, count: int):
        self.count = count
        super().__init__(
            f"Found {count} staff lines, which is not a multiple of 5"
        )


class TemplateLoadError(ProcessingError):
    """Raised when a reference symbol template cannot be loaded."""

    pass
