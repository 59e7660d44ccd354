"""Collision-free destination names."""

from pathlib import Path
from typing import Callable, Optional

from domains.file_ingest.errors import NameResolutionExhausted

DEFAULT_MAX_ATTEMPTS = 10000


def resolve_unique_path(
    candidate: Path,
    max_attempts: Optional[int] = DEFAULT_MAX_ATTEMPTS,
    is_reserved: Optional[Callable[[Path], bool]] = None,
) -> Path:
    """
    Return ``candidate`` or the first free ``stem_N.ext`` variant beside it.

    Callers must hold the destination directory's lock across this call and
    the move that follows, otherwise two files can resolve to the same name.

    Args:
        candidate: Desired destination path
        max_attempts: Highest suffix to try; ``None`` means unbounded
        is_reserved: Extra check for paths that are taken without existing on disk

    Returns:
        A path that did not exist at the time of the check

    Raises:
        NameResolutionExhausted: Every suffix up to ``max_attempts`` is taken
    """
    def taken(path: Path) -> bool:
        return path.exists() or (is_reserved is not None and is_reserved(path))

    if not taken(candidate):
        return candidate

    stem, suffix = candidate.stem, candidate.suffix
    counter = 1

    while max_attempts is None or counter <= max_attempts:
        option = candidate.with_name(f"{stem}_{counter}{suffix}")
        if not taken(option):
            return option
        counter += 1

    raise NameResolutionExhausted(candidate, max_attempts)
