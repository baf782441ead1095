"""
Hex vector file exchange

One value per line, two's-complement, fixed width, no prefix:
    8-bit  -> 2 hex digits   (e.g. -1 -> "FF")
    32-bit -> 8 hex digits   (e.g. -1 -> "FFFFFFFF")

Files are written uppercase and newline terminated. Parsing accepts either
case, skips blank lines and `//` comment lines (the $readmemh convention),
and rejects any token that does not fit the declared width.
"""

import logging
import string
from pathlib import Path
from typing import Iterable, List, Optional, Union

import numpy as np

from .arith import to_signed, to_unsigned

logger = logging.getLogger(__name__)

SUPPORTED_WIDTHS = (8, 32)

PathLike = Union[str, Path]


class HexFileError(OSError):
    """A hex vector file could not be opened, read or written."""


class HexFormatError(ValueError):
    """A hex vector file holds a malformed or over-wide token."""


def _check_width(width: int):
    if width not in SUPPORTED_WIDTHS:
        raise ValueError(f"Unsupported width {width}; expected one of {SUPPORTED_WIDTHS}")


def _dtype(width: int):
    return np.int8 if width == 8 else np.int32


def serialize(values: Iterable[int], width: int) -> str:
    """Values -> hex text, one line per value."""
    _check_width(width)
    digits = width // 4
    return "".join(f"{to_unsigned(int(v), width):0{digits}X}\n" for v in values)


def parse(text: str, width: int, length: Optional[int] = None,
          source: str = "<string>") -> np.ndarray:
    """Hex text -> signed array. Stops after `length` values if given."""
    _check_width(width)
    values: List[int] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        token = line.strip()
        if not token or token.startswith("//"):
            continue
        if not all(ch in string.hexdigits for ch in token):
            raise HexFormatError(f"{source}:{lineno}: not a hex value: {token!r}")
        raw = int(token, 16)
        if raw >> width:
            raise HexFormatError(f"{source}:{lineno}: {token!r} does not fit {width} bits")
        values.append(to_signed(raw, width))
        if length is not None and len(values) >= length:
            break
    return np.array(values, dtype=_dtype(width))


def dump_to_hex_file(path: PathLike, data, width: int) -> int:
    """Write data to a hex file; returns the number of elements written."""
    _check_width(width)
    data = np.asarray(data).ravel()
    try:
        with open(path, "w") as f:
            f.write(serialize(data, width))
    except OSError as e:
        raise HexFileError(f"Cannot open file {path}: {e.strerror or e}") from e
    logger.info(f"Dumped {len(data)} elements to {path}")
    return len(data)


def load_from_hex_file(path: PathLike, length: Optional[int] = None,
                       width: int = 8) -> np.ndarray:
    """Read up to `length` values (all if None) from a hex file."""
    _check_width(width)
    try:
        with open(path, "r") as f:
            text = f.read()
    except OSError as e:
        raise HexFileError(f"Cannot open file {path}: {e.strerror or e}") from e
    values = parse(text, width, length, source=str(path))
    logger.debug(f"Loaded {len(values)} elements from {path}")
    return values
