"""Write an assembled document to disk."""

import logging
import mimetypes
import os
import pathlib
import tempfile

from html_flattener.errors import DeliveryError


HTML_MEDIA_TYPE: str = "text/html"


def _html_filename(filename: str) -> str:
    """Make sure a filename is recognized as an HTML document.

    :param filename: Requested file name.
    :returns: File name whose guessed media type is ``text/html``.
    """

    media_type, _ = mimetypes.guess_type(filename)
    if media_type == HTML_MEDIA_TYPE:
        return filename
    return f"{filename}.html"


def deliver(
    document: str,
    filename: str,
    *,
    output_dir: pathlib.Path | None = None,
    logger: logging.Logger | None = None,
) -> pathlib.Path:
    """Save the document as a UTF-8 HTML file.

    The bytes go to a temporary file next to the target, which then replaces
    the target atomically. The temporary file is removed on every path.

    :param document: Assembled document text.
    :param filename: Target file name or path.
    :param output_dir: Directory for relative file names (defaults to cwd).
    :param logger: Optional logger for progress output.
    :returns: Path of the written file.
    :raises DeliveryError: If the file cannot be written.
    """

    if logger is None:
        logger = logging.getLogger("html_flattener")

    if len(filename.strip()) == 0:
        raise DeliveryError("empty output filename")

    target: pathlib.Path = pathlib.Path(_html_filename(filename))
    if target.is_absolute() is False and output_dir is not None:
        target = output_dir / target
    if target.is_dir() is True:
        raise DeliveryError(f"output path is a directory: {target}")

    payload: bytes = document.encode("utf-8")
    tmp_path: pathlib.Path | None = None
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        tmp_path = pathlib.Path(tmp_name)
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
        os.replace(tmp_path, target)
        tmp_path = None
    except OSError as e:
        raise DeliveryError(f"could not write {target}: {e}") from e
    finally:
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)

    logger.info(
        f"html-flattener: wrote {target} ({len(payload) / 1024:.1f} KiB, {HTML_MEDIA_TYPE}; charset=utf-8)"
    )
    return target
