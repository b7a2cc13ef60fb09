"""Path helpers for backend-native keys.

Paths are ``/``-separated and relative to the provider root. A trailing slash
marks a directory (``"photos/2024/"``); the empty string is the root.
"""

from __future__ import annotations

from remote_ops._errors import InvalidPath


def normalize_path(raw: str, *, directory: bool | None = None) -> str:
    """Normalize a path, validating it on the way.

    Backslashes become slashes, empty and ``.`` segments are dropped and a
    trailing slash is kept (or forced by ``directory``).

    :param raw: The path to normalize.
    :param directory: Force (``True``) or strip (``False``) the directory
        marker. ``None`` keeps whatever ``raw`` had.
    :raises InvalidPath: If the path contains a null byte or a ``..`` segment.
    """
    if "\0" in raw:
        raise InvalidPath("Path contains null byte", path=raw)
    p = raw.replace("\\", "/")
    is_dir = p.endswith("/") if directory is None else directory
    parts: list[str] = []
    for segment in p.split("/"):
        if segment == "" or segment == ".":
            continue
        if segment == "..":
            raise InvalidPath("Path contains '..' segment", path=raw)
        parts.append(segment)
    if not parts:
        return ""
    joined = "/".join(parts)
    return f"{joined}/" if is_dir else joined


def is_directory_path(path: str) -> bool:
    return path == "" or path.endswith("/")


def as_directory(path: str) -> str:
    """Return ``path`` with exactly one trailing slash (root stays ``""``)."""
    stripped = path.rstrip("/")
    return f"{stripped}/" if stripped else ""


def join_path(prefix: str, name: str) -> str:
    """Join a directory prefix and a child name."""
    if not prefix:
        return name.lstrip("/")
    return f"{as_directory(prefix)}{name.lstrip('/')}"


def path_name(path: str) -> str:
    """Final component of a path, without the directory marker."""
    return path.rstrip("/").rsplit("/", 1)[-1]


def parent_path(path: str) -> str:
    """Parent directory of ``path`` with a trailing slash, or ``""`` at the root."""
    stripped = path.rstrip("/")
    if "/" not in stripped:
        return ""
    return stripped.rsplit("/", 1)[0] + "/"


def rebase_key(key: str, src_prefix: str, dst_prefix: str) -> str:
    """Move ``key`` from under ``src_prefix`` to under ``dst_prefix``.

    :raises InvalidPath: If ``key`` is not under ``src_prefix``.
    """
    if not key.startswith(src_prefix):
        raise InvalidPath(f"Key {key!r} is not under prefix {src_prefix!r}", path=key)
    return dst_prefix + key[len(src_prefix) :]


def split_extension(name: str) -> tuple[str, str]:
    """Split ``"report.final.pdf"`` into ``("report.final", ".pdf")``.

    Dotfiles such as ``".env"`` have no extension.
    """
    dot = name.rfind(".")
    if dot <= 0:
        return name, ""
    return name[:dot], name[dot:]
