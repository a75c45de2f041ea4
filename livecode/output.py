"""Parsing of the combined stream captured by the instrumentation.

The guest writes printed text and image records into one buffer. Lines that
start with the image sentinel carry a base64 PNG; every other non-blank line
is printed text.
"""

from __future__ import annotations

from typing import NamedTuple

from livecode.core.models import ImageArtifact

DEFAULT_SENTINEL = "__IMG__"


class ParsedOutput(NamedTuple):
    text: str
    images: list[ImageArtifact]


def parse_output(raw: str, sentinel: str = DEFAULT_SENTINEL) -> ParsedOutput:
    """Split a captured stream into text and ordered image artifacts.

    Never raises: a malformed payload is kept verbatim and only fails when a
    consumer decodes it.

    Args:
        raw: Buffer contents returned by the instrumented program
        sentinel: Prefix that marks an image record

    Returns:
        ParsedOutput with newline-terminated text lines and images in order
    """
    text_lines: list[str] = []
    images: list[ImageArtifact] = []

    for line in raw.split("\n"):
        line = line.removesuffix("\r")
        if line.startswith(sentinel):
            images.append(ImageArtifact(format="png", data=line[len(sentinel):]))
        elif line.strip():
            text_lines.append(line + "\n")

    return ParsedOutput("".join(text_lines), images)
