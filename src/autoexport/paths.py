"""Output path synthesis for recursive collection exports."""

from __future__ import annotations

from dataclasses import dataclass
import os
import re
from typing import TYPE_CHECKING
import unicodedata

from unidecode import unidecode


if TYPE_CHECKING:
    from autoexport.config import AutoExportSettings
    from autoexport.models import Collection, Scope
    from autoexport.protocols import Library


_UNSAFE = re.compile(r"[<>:'\"/\\|?*\x00-\x1f]")
_SPACES = re.compile(r" +")


def _is_latin(char: str) -> bool:
    return unicodedata.name(char, "").startswith("LATIN ")


@dataclass(frozen=True)
class PathOptions:
    """How collection names are turned into file name parts."""

    diacritics: bool = False
    """Fold accented characters to ASCII."""

    dir_sep: str = "-"
    """Joins the names along the collection path."""

    space: str = " "
    """Replaces each run of spaces."""

    @classmethod
    def from_settings(cls, settings: AutoExportSettings) -> PathOptions:
        return cls(
            diacritics=settings.path_replace_diacritics,
            dir_sep=settings.path_replace_dir_sep,
            space=settings.path_replace_space,
        )


def fold_to_ascii(text: str) -> str:
    """Transliterate Latin letters to ASCII, keeping characters of other scripts."""
    return "".join(
        unidecode(char) if not char.isascii() and _is_latin(char) else char
        for char in unicodedata.normalize("NFC", text)
    )


def sanitize_segment(name: str, options: PathOptions) -> str:
    """Make a collection name safe to use inside a file name."""
    if options.diacritics:
        name = fold_to_ascii(name)
    name = _UNSAFE.sub("", name)
    return _SPACES.sub(options.space, name)


def collection_output_path(
    output: str,
    segments: tuple[str, ...] | list[str],
    extension: str,
    options: PathOptions,
) -> str:
    """Build the output file for a descendant collection.

    The base name of ``output`` (without ``extension``) is joined with the
    collection names from the recursion root down to the collection.

    Args:
        output: Output path of the binding
        segments: Collection names, outermost first
        extension: Exporter file extension, with or without leading dot
        options: Name sanitising options
    """
    ext = extension if extension.startswith(".") else f".{extension}"
    directory, base = os.path.split(output)
    if base.endswith(ext):
        base = base[: -len(ext)]
    parts = [sanitize_segment(part, options) for part in (base, *segments)]
    return os.path.join(directory, (options.dir_sep or "-").join(parts) + ext)  # noqa: PTH118


async def collection_tree(
    library: Library,
    scope: Scope,
) -> list[tuple[Collection, tuple[str, ...]]]:
    """List every descendant collection of ``scope`` depth-first, in store order.

    Returns:
        ``(collection, names)`` pairs, where ``names`` runs from the first
        collection below the scope root down to the collection itself
    """
    if scope.type == "library":
        roots = await library.top_collections(scope.id)
    else:
        roots = await library.child_collections(scope.id)

    result: list[tuple[Collection, tuple[str, ...]]] = []
    seen: set[int] = set()
    stack = [(coll, (coll.name,)) for coll in reversed(roots)]
    while stack:
        coll, names = stack.pop()
        if coll.id in seen:
            continue
        seen.add(coll.id)
        result.append((coll, names))
        children = await library.child_collections(coll.id)
        stack.extend((child, (*names, child.name)) for child in reversed(children))
    return result
