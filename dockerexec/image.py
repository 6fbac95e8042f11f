"""
Image reference validation.

The image reference comes from the container's own environment, so it is
untrusted, and it ends up on the daemon client's command line. This module is
the only place it is checked: anything outside the grammar below is rejected,
nothing is escaped later.

Grammar:
    [[host[:port]/]repository][:tag]

built from word characters, dots, hyphens, colons and slashes, with at most
one leading host segment.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from dockerexec.exceptions import InvalidImageError

logger = logging.getLogger(__name__)

IMAGE_PATTERN = r"(([\w.-]+)(:\d+)*/)?[\w.:-]+"

# ASCII only: \w must not admit unicode lookalikes.
_IMAGE_RE = re.compile(IMAGE_PATTERN, re.ASCII)
_QUOTES_RE = re.compile(r"['\"]")


def strip_quotes(raw: str) -> str:
    """Remove every single and double quote character."""
    return _QUOTES_RE.sub("", raw)


def is_valid_image(name: str) -> bool:
    """True if name matches the image grammar in full."""
    return bool(name) and _IMAGE_RE.fullmatch(name) is not None


def validate_image(raw: Optional[str]) -> str:
    """
    Clean and validate an image reference.

    Returns:
        The reference with quotes stripped.

    Raises:
        InvalidImageError: If the reference is missing, empty, or does not
            match the grammar.
    """
    if raw is None or not raw:
        raise InvalidImageError("Container image must not be null")
    image = strip_quotes(raw)
    logger.debug("containerImageName from launch context: %s", image)
    if not is_valid_image(image):
        raise InvalidImageError(
            f"Image: {image} is not a proper docker image", image=image
        )
    return image
