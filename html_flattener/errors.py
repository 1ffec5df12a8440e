"""Error taxonomy for the export pipeline.

Every fatal error derives from :class:`BundleError` so the CLI can report it
uniformly. Errors carry the pipeline phase and, where one applies, the module
path that triggered them.
"""


class BundleError(RuntimeError):
    """Raised when an export cannot be completed.

    :ivar phase: Pipeline phase name (e.g. ``acquire``, ``rewrite``).
    """

    phase: str = "build"

    def __init__(self, message: str) -> None:
        super().__init__(f"[{self.phase}] {message}")


class AcquisitionError(BundleError):
    """Raised when a module, stylesheet or diagram snapshot cannot be obtained.

    :ivar path: Module path (or resource name) that failed.
    :ivar cause: Underlying exception, if any.
    """

    phase = "acquire"

    def __init__(self, path: str, cause: BaseException | str) -> None:
        self.path: str = path
        self.cause: BaseException | str = cause
        super().__init__(f"could not obtain {path!r}: {cause}")


class ResolutionError(BundleError):
    """Raised when a specifier escapes the virtual root or cannot be resolved.

    :ivar path: Module path containing the specifier.
    :ivar specifier: Offending specifier.
    """

    phase = "resolve"

    def __init__(self, path: str, specifier: str, reason: str) -> None:
        self.path: str = path
        self.specifier: str = specifier
        super().__init__(f"{path}: {specifier!r}: {reason}")


class EncodingError(BundleError):
    """Raised when embedded text cannot be decoded back to Unicode."""

    phase = "encode"


class DeliveryError(BundleError):
    """Raised when the assembled document cannot be written out."""

    phase = "deliver"
