from __future__ import annotations

from typing import NamedTuple
from urllib.parse import unquote, urlsplit


PUBLIC_OBJECT_MARKER = "/storage/v1/object/public/"


class StorageObject(NamedTuple):
    bucket: str
    object_path: str


def parse_public_url(url: str | None) -> StorageObject | None:
    """Split a public object URL into bucket and object path.

    Returns None for anything that does not point at a public storage object;
    callers treat that as "nothing to delete".
    """
    if not url or not isinstance(url, str):
        return None
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None

    # storage keys are stored decoded, so %2F in a key is a real slash
    path = unquote(parts.path)
    idx = path.find(PUBLIC_OBJECT_MARKER)
    if idx == -1:
        return None
    segments = path[idx + len(PUBLIC_OBJECT_MARKER):].split("/")
    bucket = segments[0]
    object_path = "/".join(segments[1:])
    if not bucket or not object_path:
        return None
    return StorageObject(bucket=bucket, object_path=object_path)


def group_by_bucket(objects) -> dict[str, list[str]]:
    grouped: dict[str, list[str]] = {}
    for obj in objects:
        grouped.setdefault(obj.bucket, []).append(obj.object_path)
    return grouped
