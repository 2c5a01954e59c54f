"""Utility functions for avatar path validation."""

import enum
import logging
import os
import re
import sys
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import unquote_to_bytes

logger = logging.getLogger(__name__)

FILE_SCHEME = "file://"
MEDIA_SUBPATH = ("BeeperTexts", "media")

_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_DRIVE_PATH = re.compile(r"^/[A-Za-z]:")


class RejectReason(enum.Enum):
    """Why an avatar reference was rejected."""

    SCHEME = "scheme"
    DECODE = "decode"
    NUL_BYTE = "nul_byte"
    TRAVERSAL = "traversal"
    OUTSIDE_ROOTS = "outside_roots"
    ERROR = "error"


@dataclass(frozen=True)
class AvatarPathResult:
    """Outcome of validating an avatar reference.

    Exactly one of ``path`` and ``reason`` is set.
    """

    path: str | None = None
    reason: RejectReason | None = None

    def __post_init__(self) -> None:
        if (self.path is None) == (self.reason is None):
            raise ValueError("AvatarPathResult needs exactly one of path or reason")

    @property
    def ok(self) -> bool:
        return self.path is not None


def _normalise_roots(roots: Iterable[str]) -> tuple[str, ...]:
    """Return deduplicated absolute, normalised directories, keeping order."""
    normalised: list[str] = []
    for root in roots:
        resolved = os.path.normpath(os.path.abspath(root))
        if resolved not in normalised:
            normalised.append(resolved)
    return tuple(normalised)


def allowed_avatar_roots(
    platform: str | None = None,
    environ: Mapping[str, str] | None = None,
    home: str | None = None,
) -> tuple[str, ...]:
    """Compute the directories that may legitimately contain avatar images.

    Args:
        platform: Platform identifier as in ``sys.platform`` (default: current)
        environ: Environment mapping (default: ``os.environ``)
        home: User home directory (default: ``os.path.expanduser("~")``)

    Returns:
        Ordered tuple of absolute, normalised directory paths
    """
    platform = sys.platform if platform is None else platform
    environ = os.environ if environ is None else environ
    home = os.path.expanduser("~") if home is None else home

    if platform == "darwin":
        roots = [os.path.join(home, "Library", "Application Support", *MEDIA_SUBPATH)]
    elif platform == "win32":
        roots = [os.path.join(home, "AppData", "Roaming", *MEDIA_SUBPATH)]
    else:
        roots = []
        xdg_data_home = environ.get("XDG_DATA_HOME")
        if xdg_data_home:
            roots.append(os.path.join(xdg_data_home, *MEDIA_SUBPATH))
        roots.append(os.path.join(home, ".local", "share", *MEDIA_SUBPATH))

    return _normalise_roots(roots)


@lru_cache(maxsize=1)
def get_allowed_avatar_roots() -> tuple[str, ...]:
    """Return the allowed avatar roots for this process, computed on first use."""
    roots = allowed_avatar_roots()
    logger.debug("Allowed avatar roots: %s", ", ".join(roots))
    return roots


def is_path_allowed(path: str, roots: Iterable[str]) -> bool:
    """Return ``True`` when ``path`` is a root or lies strictly inside one.

    A sibling such as ``<root>-other`` does not match: the root must be
    followed by a path separator.
    """
    for root in roots:
        if path == root or path.startswith(root.rstrip(os.sep) + os.sep):
            return True
    return False


def _decode(remainder: str) -> str:
    """Percent-decode ``remainder`` as UTF-8.

    Raises:
        ValueError: If an escape is malformed or the bytes are not UTF-8
    """
    if _BAD_ESCAPE.search(remainder):
        raise ValueError("malformed percent-escape")
    return unquote_to_bytes(remainder).decode("utf-8")


def _has_parent_segment(path: str) -> bool:
    return ".." in re.split(r"[\\/]", path)


def _check(reference: str, roots: Iterable[str]) -> AvatarPathResult:
    remainder = reference[len(FILE_SCHEME):]

    try:
        decoded = _decode(remainder)
    except ValueError:
        return AvatarPathResult(reason=RejectReason.DECODE)

    if "\0" in decoded:
        return AvatarPathResult(reason=RejectReason.NUL_BYTE)

    if os.name == "nt" and _DRIVE_PATH.match(decoded):
        decoded = decoded[1:]

    canonical = os.path.normpath(os.path.abspath(decoded))

    if "\0" in canonical:
        return AvatarPathResult(reason=RejectReason.NUL_BYTE)
    if _has_parent_segment(canonical):
        return AvatarPathResult(reason=RejectReason.TRAVERSAL)

    if not is_path_allowed(canonical, roots):
        return AvatarPathResult(reason=RejectReason.OUTSIDE_ROOTS)

    return AvatarPathResult(path=canonical)


def avatar_path_result(reference: str, roots: Iterable[str]) -> AvatarPathResult:
    """Validate an untrusted ``file://`` avatar reference against ``roots``.

    Args:
        reference: URI taken from an API payload
        roots: Allowed avatar roots, as returned by ``allowed_avatar_roots``

    Returns:
        A result holding either the canonical path or the rejection reason.
        Never raises.
    """
    if not isinstance(reference, str) or not reference.startswith(FILE_SCHEME):
        return AvatarPathResult(reason=RejectReason.SCHEME)

    try:
        result = _check(reference, tuple(roots))
    except Exception:
        logger.debug("Unexpected error validating avatar reference", exc_info=True)
        result = AvatarPathResult(reason=RejectReason.ERROR)

    if not result.ok:
        logger.debug("Rejected avatar reference (%s)", result.reason.value)
    return result


def safe_avatar_path(reference: str, roots: Iterable[str]) -> str | None:
    """Return the validated local path for ``reference``, or ``None``.

    A returned path is safe to open directly. ``None`` means the caller must
    fall back to a non-file icon.
    """
    return avatar_path_result(reference, roots).path
