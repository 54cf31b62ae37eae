"""Decide which preset governs a note.

Folder subjects walk their ancestor chain, most specific first, and return the first
folder that has a selected preset. Tag subjects (``#project/alpha``) walk nested tags
the same way. When nothing matches, the global preset applies, and when no global
preset is set, the default preset.

For a note with tags, ``preset_apply_mode`` decides whether folders or tags are
consulted first, or only one of them.

The resolver only reads the mapping tables. It never checks whether the preset it
returns exists; the applier falls back to the default preset when it does not.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from .. import lib
from ..mapping import ROOT_FOLDER, MappingTables, normalize_folder, normalize_tag


class Source(enum.StrEnum):
    """Which binding a resolution came from."""
    Folder = 'folder'
    Tag = 'tag'
    Global = 'global'
    Default = 'default'


class ApplyMode(enum.StrEnum):
    """Order in which folder and tag bindings are consulted for a note."""
    FolderFirst = 'folder_first'
    TagFirst = 'tag_first'
    FolderOnly = 'folder_only'
    TagOnly = 'tag_only'


@dataclass(frozen=True)
class Resolution:
    """Result of a lookup.

    Attributes:
        name: The preset name.
        source: The :class:`Source` of the binding.
        key: The folder or tag that matched, or an empty string for fallbacks.
    """
    name: str
    source: Source
    key: str = ''


def ancestors(path: str) -> Iterator[str]:
    """Yield ``path`` and each of its parent folders, ending with the root ``/``."""
    path = normalize_folder(path)
    while path != ROOT_FOLDER:
        yield path
        idx = path.rfind('/')
        if idx <= 0:
            break
        path = path[:idx]
    yield ROOT_FOLDER


def tag_ancestors(tag: str) -> Iterator[str]:
    """Yield ``tag`` and each of its parent tags: ``a/b/c``, ``a/b``, ``a``."""
    tag = normalize_tag(tag)
    while tag:
        yield tag
        idx = tag.rfind('/')
        tag = tag[:idx] if idx > 0 else ''


def is_tag(subject: Optional[str]) -> bool:
    return bool(subject) and subject.startswith('#')


class PresetResolver:
    """Resolve folder paths, tags and notes to preset names.

    Args:
        mapping: The binding tables to read.
    """

    def __init__(self, mapping: MappingTables) -> None:
        self.mapping = mapping

    def fallback(self) -> Resolution:
        name = self.mapping.global_preset()
        if name and name != lib.DEFAULT_PRESET:
            return Resolution(name, Source.Global)
        return Resolution(lib.DEFAULT_PRESET, Source.Default)

    def resolve_folder(self, path: Optional[str]) -> Optional[Resolution]:
        """Return the closest folder binding of ``path``, or None."""
        if not path or not self.mapping.has_folder_mappings():
            return None
        active = self.mapping.active_folder_presets()
        for folder in ancestors(path):
            name = active.get(folder)
            if name:
                return Resolution(name, Source.Folder, folder)
        return None

    def resolve_tag(self, tag: Optional[str]) -> Optional[Resolution]:
        """Return the closest tag binding of ``tag``, or None."""
        if not tag:
            return None
        table = self.mapping.tag_presets()
        if not table:
            return None
        for t in tag_ancestors(tag):
            name = table.get(t)
            if name:
                return Resolution(name, Source.Tag, t)
        return None

    def resolve_tags(self, tags: Iterable[str]) -> Optional[Resolution]:
        """Return the binding of the first tag, in order, that has one."""
        for tag in tags:
            result = self.resolve_tag(tag)
            if result:
                return result
        return None

    def resolve_detailed(self, subject: Optional[str]) -> Resolution:
        """Resolve a folder path or a ``#tag`` subject. Never fails."""
        if is_tag(subject):
            result = self.resolve_tag(subject)
        else:
            result = self.resolve_folder(subject)
        result = result or self.fallback()
        logging.debug(f'Resolved "{subject}" to "{result.name}" ({result.source})')
        return result

    def resolve(self, subject: Optional[str]) -> str:
        """Return the preset name for a folder path or ``#tag`` subject."""
        return self.resolve_detailed(subject).name

    def resolve_note(
            self,
            path: Optional[str],
            tags: Iterable[str] = (),
            mode: ApplyMode = ApplyMode.FolderFirst,
            use_folders: bool = True,
            use_tags: bool = True,
    ) -> Resolution:
        """Resolve a note from its folder and its tags, then fall back.

        Args:
            path: Folder of the note.
            tags: The note's tags, with or without a leading ``#``, tried in order.
            mode: Which of folders and tags to consult, and in what order.
            use_folders: False skips folder bindings whatever the mode.
            use_tags: False skips tag bindings whatever the mode.
        """
        mode = ApplyMode(mode)
        tags = tuple(tags)
        steps = []
        if use_folders and mode != ApplyMode.TagOnly:
            steps.append(lambda: self.resolve_folder(path))
        if use_tags and mode != ApplyMode.FolderOnly:
            steps.append(lambda: self.resolve_tags(tags))
        if mode == ApplyMode.TagFirst:
            steps.reverse()

        for step in steps:
            result = step()
            if result:
                logging.debug(f'Resolved note "{path}" to "{result.name}" via {result.source} "{result.key}"')
                return result
        return self.fallback()
