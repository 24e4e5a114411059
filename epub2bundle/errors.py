"""Exception types raised by the bundle compiler."""


class CompilerError(Exception):
    """Base class for all compiler failures."""


class NotFoundError(CompilerError):
    """A referenced entry does not exist in the EPUB archive."""

    def __init__(self, path: str):
        super().__init__(f"File non trovato nell'EPUB: {path}")
        self.path = path


class InvalidContainerError(CompilerError):
    """The archive or its META-INF/container.xml is malformed."""


class BundleWriteError(CompilerError):
    """Writing the bundle to disk failed."""


class PaginationError(CompilerError):
    """The pagination sidecar returned an error or an unusable payload."""

    def __init__(self, message: str, code: str = "invalid_response"):
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message
