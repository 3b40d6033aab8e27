"""
Target address resolution.

A target string is either ``region:resource`` or a bare resource. The prefix
only counts as a region when it has the region shape (``us-east-1``,
``ap-southeast-2``, ``us-gov-west-1``); anything else, including resource
names that contain colons such as ``my-app:production``, is kept whole.
"""

import re
from typing import Iterable, List, Tuple

from log_hound.core.exceptions import AddressParseError
from log_hound.core.logging import logger
from .base import Target


_REGION_PATTERN = re.compile(r"^[a-z]{2}(?:-[a-z]+)+-\d+$")


def validate_endpoint(value: str) -> str:
    """Return ``value`` if it is region-shaped, else raise AddressParseError."""
    parts = value.split("-")
    if len(parts) < 3:
        raise AddressParseError(value, "expected at least three hyphen-separated parts")
    if not parts[-1].isdigit():
        raise AddressParseError(value, "last part must be numeric")
    if not _REGION_PATTERN.match(value):
        raise AddressParseError(value, "expected lowercase letter segments, e.g. us-east-1")
    return value


def split_target(raw: str) -> Tuple[str, str]:
    """Split ``endpoint:resource``; raises AddressParseError when there is no endpoint."""
    value = raw.strip()
    prefix, sep, resource = value.partition(":")
    if not sep:
        raise AddressParseError(value, "no endpoint prefix")
    if not resource:
        raise AddressParseError(value, "empty resource after prefix")
    return validate_endpoint(prefix), resource


def resolve_target(raw: str) -> Target:
    """Resolve one identifier. Never fails; malformed prefixes mean no endpoint."""
    try:
        endpoint, resource = split_target(raw)
    except AddressParseError as e:
        if ":" in raw:
            logger.debug("Treating %r as a plain resource: %s", raw, e.message)
        return Target(resource=raw.strip())
    return Target(resource=resource, endpoint=endpoint)


def resolve_targets(raws: Iterable[str]) -> List[Target]:
    return [resolve_target(raw) for raw in raws]
