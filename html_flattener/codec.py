"""Text codecs for embedding payloads into an HTML document."""

import base64
import binascii
import re

from html_flattener.errors import EncodingError


DATA_URL_PREFIX: str = "data:text/javascript;base64,"

_SCRIPT_CLOSE_RE: re.Pattern[str] = re.compile(r"</(script)", re.IGNORECASE)
_HTML_ESCAPES: dict[str, str] = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
}
_HTML_ESCAPE_RE: re.Pattern[str] = re.compile(r'[&<>"]')


def encode_text(text: str) -> str:
    """Base64-encode Unicode text through its UTF-8 bytes.

    :param text: Text to encode.
    :returns: ASCII base64 string.
    """

    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_text(encoded: str) -> str:
    """Decode text produced by :func:`encode_text`.

    :param encoded: ASCII base64 string.
    :returns: Original text.
    :raises EncodingError: If the payload is not valid base64 or not UTF-8.
    """

    try:
        raw: bytes = base64.b64decode(encoded.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise EncodingError(f"invalid base64 payload: {e}") from e
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise EncodingError(f"embedded payload is not UTF-8: {e}") from e


def to_data_url(code: str) -> str:
    """Wrap module code into a directly loadable ``data:`` URL.

    :param code: JavaScript module source.
    :returns: ``data:text/javascript;base64,...`` URL.
    """

    return DATA_URL_PREFIX + encode_text(code)


def from_data_url(url: str) -> str:
    """Recover module code from a URL produced by :func:`to_data_url`.

    :param url: ``data:`` URL.
    :returns: Module source.
    :raises EncodingError: If the URL is not a base64 JavaScript data URL.
    """

    if url.startswith(DATA_URL_PREFIX) is False:
        raise EncodingError(f"not a JavaScript data URL: {url[0:40]!r}")
    return decode_text(url[len(DATA_URL_PREFIX) :])


def escape_html(text: str) -> str:
    """Escape text for HTML element or double-quoted attribute context.

    :param text: Raw text.
    :returns: Escaped text.
    """

    return _HTML_ESCAPE_RE.sub(lambda m: _HTML_ESCAPES[m.group(0)], text)


def escape_for_script(text: str) -> str:
    """Make text safe to place inside a ``<script>`` element.

    ``</script`` would end the element early and ``<!--`` switches the HTML
    parser into an escaped state. Both are rewritten with escapes that JSON
    and JavaScript string literals decode back to the original characters.

    :param text: Script or JSON text.
    :returns: Escaped text.
    """

    escaped: str = _SCRIPT_CLOSE_RE.sub(r"<\\/\1", text)
    return escaped.replace("<!--", "\\u003C!--")
