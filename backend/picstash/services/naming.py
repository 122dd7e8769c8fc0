"""
PicStash Backend — File Namer
===============================

What:  Turns a client-supplied file name into safe candidate names on disk.
Why:   Client names can carry directory parts, control characters and hidden-file
       dots; two uploads of "photo.jpg" must not overwrite each other.
How:   `sanitize()` cleans the name, `with_extension()` fills in a missing image
       extension from the MIME type, and `candidates()` yields the names the
       store tries in order.

Uniqueness:
    The namer never checks the directory itself. The store opens each candidate
    with exclusive create and moves to the next one on FileExistsError, so there
    is no window between "name is free" and "file is written".

    photo.jpg → photo.jpg, photo-(2).jpg, photo-(3).jpg, ...
    with generate_unique_name → 3f2c...9a.jpg (uuid4 hex + original extension)
"""

import itertools
import os
import re
import uuid
from typing import Iterator

# Backslash escapes the browser may send for quotes, NULs and control characters
_ESCAPED_CHARS_RE = re.compile(r"(\\)([\000\010\011\012\015\032\042\047\134\140])")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")
_IMAGE_TYPE_RE = re.compile(r"^image/(gif|jpe?g|png)", re.IGNORECASE)


def strip_escapes(value: str) -> str:
    """Remove the backslash in front of escaped quote/control characters."""
    return _ESCAPED_CHARS_RE.sub(r"\2", value)


class FileNamer:
    """Builds safe, collision-free names for uploaded files."""

    def __init__(self, generate_unique_name: bool = False):
        self.generate_unique_name = generate_unique_name

    def sanitize(self, name: str) -> str:
        """
        Reduce a client name to a bare file name.

        Path information is removed (both separators, since old browsers send
        full Windows paths), then surrounding dots/NULs/spaces are trimmed so the
        result can neither escape the directory nor become a hidden file.
        """
        name = strip_escapes(name or "")
        name = name.replace("\\", "/").rsplit("/", 1)[-1]
        name = _CONTROL_CHARS_RE.sub("", name)
        return name.strip(". \x00")

    def with_extension(self, name: str, file_type: str) -> str:
        """Append gif/jpg/jpeg/png when the name has no extension and the type says image."""
        match = _IMAGE_TYPE_RE.match(file_type or "")
        if "." not in name and match:
            return f"{name}.{match.group(1).lower()}"
        return name

    def format(self, name: str, file_type: str) -> str:
        """Sanitized name with extension; the first candidate before uniqueness."""
        name = self.with_extension(self.sanitize(name), file_type)
        return name or "file"

    def candidates(self, name: str) -> Iterator[str]:
        """
        Yield names to try, in order, for a formatted file name.

        The iterator is unbounded; the caller stops at the first name it can
        create exclusively.
        """
        extension = os.path.splitext(name)[1]
        if self.generate_unique_name:
            while True:
                yield f"{uuid.uuid4().hex}{extension}"

        stem = name[: len(name) - len(extension)] if extension else name
        yield name
        for n in itertools.count(2):
            yield f"{stem}-({n}){extension}"
