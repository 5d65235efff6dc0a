"""
Path normalization shared by every device.

Works like realpath for paths that do not exist anywhere: it is a pure
string algorithm and never touches the filesystem.
"""

import re

_SEPARATORS = re.compile(r"[/\\]")


def absolute_path(path: str) -> str:
    """
    Resolve ``..``, ``.``, ``//`` and ``\\`` segments into an absolute path.

    A ``..`` with nothing left to pop is ignored, so the result never climbs
    above the root:

        >>> absolute_path("/a/b/../c")
        '/a/c'
        >>> absolute_path("/a/../..")
        '/'
    """
    absolutes: list[str] = []

    for part in _SEPARATORS.split(path):
        if not part or part == ".":
            continue
        if part == "..":
            if absolutes:
                absolutes.pop()
            continue
        absolutes.append(part)

    return "/" + "/".join(absolutes)
