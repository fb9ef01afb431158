"""Part planning and part manifests for multipart uploads.

Pure functions only: no settings, no I/O. Callers pass limits explicitly
so a plan is fully determined by its arguments. The upload client imports
this module too, so it must not depend on Django.
"""

import math
from dataclasses import dataclass

from uploads.exceptions import (
    FileTooLargeError,
    InvalidSizeError,
    MalformedPartsError,
)

MiB = 1024 * 1024
GiB = 1024 * MiB

MIN_PART_SIZE = 5 * MiB  # every part except the last
MAX_PARTS = 10_000
MULTIPART_MAX_SIZE = 500 * MiB
MULTIPART_THRESHOLD = 10 * MiB

STRATEGY_SINGLE = "single"
STRATEGY_MULTIPART = "multipart"


@dataclass(frozen=True)
class PartPlan:
    file_size: int
    part_size: int
    part_count: int


@dataclass(frozen=True)
class PartRange:
    """Byte range of one part; ``end`` is exclusive."""

    part_number: int
    start: int
    end: int

    @property
    def size(self):
        return self.end - self.start


def check_file_size(file_size, max_size):
    """Raise unless ``file_size`` is a positive int within ``max_size``."""
    if isinstance(file_size, bool) or not isinstance(file_size, int):
        raise InvalidSizeError(f"Invalid file size: {file_size!r}.")
    if file_size <= 0:
        raise InvalidSizeError(f"Invalid file size: {file_size}.")
    if max_size is not None and file_size > max_size:
        raise FileTooLargeError(
            f"File size {file_size} bytes exceeds maximum of {max_size} bytes."
        )


def plan_parts(file_size, max_size=MULTIPART_MAX_SIZE):
    """Compute the part size and count for a multipart upload.

    Args:
        file_size: Declared total size in bytes.
        max_size: Largest accepted file size, or None for no ceiling.

    Returns:
        A PartPlan.

    Raises:
        InvalidSizeError: If file_size is not a positive integer.
        FileTooLargeError: If file_size exceeds max_size.
    """
    check_file_size(file_size, max_size)

    if file_size <= 100 * MiB:
        part_size = max(MIN_PART_SIZE, 8 * MiB)
    elif file_size <= GiB:
        part_size = 16 * MiB
    else:
        part_size = 32 * MiB

    if math.ceil(file_size / part_size) > MAX_PARTS:
        part_size = math.ceil(file_size / MAX_PARTS)
        part_size = math.ceil(part_size / MiB) * MiB

    return PartPlan(
        file_size=file_size,
        part_size=part_size,
        part_count=math.ceil(file_size / part_size),
    )


def slice_parts(file_size, part_size):
    """Return the PartRanges covering ``file_size`` bytes, in order."""
    return [
        PartRange(part_number=number, start=start, end=min(start + part_size, file_size))
        for number, start in enumerate(range(0, file_size, part_size), start=1)
    ]


def select_strategy(file_size, threshold=MULTIPART_THRESHOLD):
    """Pick single-PUT or multipart upload for a file of ``file_size`` bytes."""
    if file_size > threshold:
        return STRATEGY_MULTIPART
    return STRATEGY_SINGLE


@dataclass(frozen=True)
class PartToken:
    """Completion token for one uploaded part."""

    part_number: int
    etag: str

    def to_wire(self):
        return {"PartNumber": self.part_number, "ETag": self.etag}


def normalize_etag(etag):
    """Wrap ``etag`` in double quotes unless it already is quoted."""
    if not etag:
        return ""
    if len(etag) >= 2 and etag.startswith('"') and etag.endswith('"'):
        return etag
    return f'"{etag}"'


def parse_part_tokens(parts):
    """Validate a completion manifest and return PartTokens sorted by number.

    Accepts PartTokens or wire dicts ``{"PartNumber": int, "ETag": str}``
    in any order.

    Raises:
        MalformedPartsError: Empty list, bad entry, or repeated part number.
    """
    if not isinstance(parts, (list, tuple)) or not parts:
        raise MalformedPartsError("parts array required.")

    tokens = []
    for part in parts:
        if isinstance(part, PartToken):
            number, etag = part.part_number, part.etag
        elif isinstance(part, dict):
            number, etag = part.get("PartNumber"), part.get("ETag")
        else:
            raise MalformedPartsError()
        if (
            isinstance(number, bool)
            or not isinstance(number, int)
            or not 1 <= number <= MAX_PARTS
            or not isinstance(etag, str)
            or not etag
        ):
            raise MalformedPartsError()
        tokens.append(PartToken(part_number=number, etag=etag))

    tokens.sort(key=lambda token: token.part_number)
    for previous, current in zip(tokens, tokens[1:]):
        if previous.part_number == current.part_number:
            raise MalformedPartsError(
                f"Part {current.part_number} appears more than once."
            )
    return tokens
