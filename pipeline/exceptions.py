class PipelineError(Exception):
    """Base exception for all fatal pipeline errors."""


class InputError(PipelineError):
    """Raised when the input directory holds no processable images."""


class RemoteCapabilityError(PipelineError):
    """Raised when a remote model call fails or returns an unusable payload."""


class StageItemError(PipelineError):
    """Raised when one image fails inside a per-image stage.

    Carries the stage name and the item's position and file name so the
    operator can see which image broke the run.
    """

    def __init__(self, stage: str, index: int, filename: str, cause: BaseException) -> None:
        self.stage = stage
        self.index = index
        self.filename = filename
        self.cause = cause
        super().__init__(
            f"{stage}: image #{index + 1} ({filename}) failed: {self._describe(cause)}"
        )

    @staticmethod
    def _describe(cause: BaseException) -> str:
        return str(cause) or type(cause).__name__


class StageTimeoutError(StageItemError):
    """Raised when a per-image operation exceeds the remote call deadline."""

    def __init__(self, stage: str, index: int, filename: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(
            stage, index, filename, TimeoutError(f"timed out after {timeout:g}s")
        )


class ContentFormatError(PipelineError):
    """Raised when the extraction response cannot be turned into a menu."""


class JsonNotFoundError(ContentFormatError):
    """Raised when brace-scanning the free-form response finds no JSON object."""


class MenuSchemaError(ContentFormatError):
    """Raised when the extracted JSON does not match the menu schema."""


class RemoteTimeoutError(RemoteCapabilityError):
    """Raised when the whole-batch extraction call exceeds its deadline."""

    def __init__(self, stage: str, timeout: float) -> None:
        self.stage = stage
        self.timeout = timeout
        super().__init__(f"{stage}: remote call timed out after {timeout:g}s")
