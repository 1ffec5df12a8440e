"""Tests for html_flattener.codec."""

from __future__ import annotations

import base64
import json
import random

import pytest

from html_flattener.codec import (
    DATA_URL_PREFIX,
    decode_text,
    encode_text,
    escape_for_script,
    escape_html,
    from_data_url,
    to_data_url,
)
from html_flattener.errors import EncodingError


SAMPLES: list[str] = [
    "",
    "plain ascii",
    "Ünïcødé ✓ … 中文 😀",
    "const s = \"it's\"; const t = 'say \"hi\"';",
    "document.write('</script><script>alert(1)</script>');",
    "<!-- not a comment in JS -->",
    "line1\nline2\r\n\ttabbed sep",
]

_FRAGMENTS: list[str] = [
    "a",
    "Z9",
    " ",
    "\t",
    "\n",
    "\r\n",
    "'",
    '"',
    "`",
    "\\",
    "</script",
    "</SCRIPT>",
    "<!--",
    "-->",
    "<",
    "/",
    "é",
    "ß",
    "中文",
    "✓",
    "…",
    "😀",
    "👩‍💻",
    " ",
    "\x00",
]


def _generated_samples(count: int, seed: int = 20261018) -> list[str]:
    rng = random.Random(seed)
    return ["".join(rng.choice(_FRAGMENTS) for _ in range(rng.randint(1, 40))) for _ in range(count)]


GENERATED: list[str] = _generated_samples(50)


@pytest.mark.parametrize("text", SAMPLES + GENERATED)
def test_encode_text_is_lossless(text: str) -> None:
    encoded = encode_text(text)

    assert encoded.isascii() is True
    assert decode_text(encoded) == text


@pytest.mark.parametrize("text", SAMPLES + GENERATED)
def test_data_url_is_lossless(text: str) -> None:
    url = to_data_url(text)

    assert url.startswith(DATA_URL_PREFIX) is True
    assert from_data_url(url) == text


def test_decode_rejects_invalid_base64() -> None:
    with pytest.raises(EncodingError):
        decode_text("not base64!!")


def test_decode_rejects_non_utf8_payload() -> None:
    with pytest.raises(EncodingError):
        decode_text(base64.b64encode(b"\xff\xfe\x00").decode("ascii"))


def test_from_data_url_rejects_other_media_types() -> None:
    with pytest.raises(EncodingError):
        from_data_url("data:text/css;base64," + encode_text("body{}"))


def test_escape_html_for_document_title() -> None:
    assert escape_html('My <Diagram> & "Co"') == "My &lt;Diagram&gt; &amp; &quot;Co&quot;"


def test_escape_html_leaves_plain_text_alone() -> None:
    assert escape_html("Order flow ✓") == "Order flow ✓"


def test_escape_for_script_neutralizes_element_terminators() -> None:
    escaped = escape_for_script("a</script>b</SCRIPT>c<!--d")

    assert "</script" not in escaped.lower()
    assert "<!--" not in escaped
    assert escaped == "a<\\/script>b<\\/SCRIPT>c\\u003C!--d"


def test_escape_for_script_preserves_json_meaning() -> None:
    payload = {"title": "</script><!-- ✓", "nodes": []}

    escaped = escape_for_script(json.dumps(payload))

    assert json.loads(escaped) == payload


@pytest.mark.parametrize("text", GENERATED)
def test_escape_for_script_on_generated_strings(text: str) -> None:
    escaped = escape_for_script(json.dumps(text, ensure_ascii=False))

    assert "</script" not in escaped.lower()
    assert "<!--" not in escaped
    assert json.loads(escaped) == text
