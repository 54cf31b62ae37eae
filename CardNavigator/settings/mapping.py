"""Preset bindings stored in the live settings.

Folders map to an ordered list of candidate presets (``folder_presets``) and to the
selected one (``active_folder_presets``). Tags map to a single preset
(``tag_presets``) and ``global_preset`` names the fallback preset. All tables are part
of the settings bundle and are persisted with settings.json.

"""
import logging
from typing import Dict, List, Optional, Set

from .lib import DEFAULT_PRESET, SettingsContext
from ..status import status

ROOT_FOLDER: str = '/'


def normalize_folder(path: Optional[str]) -> str:
    """Return the canonical form of a folder path.

    Backslashes become forward slashes and leading and trailing slashes are removed, so
    ``/A/B/`` and ``A/B`` address the same folder. An empty path addresses the vault
    root ``/``.
    """
    if not path:
        return ROOT_FOLDER
    path = path.replace('\\', '/').strip().strip('/')
    return path or ROOT_FOLDER


def normalize_tag(tag: Optional[str]) -> str:
    """Return a tag without its leading ``#`` and surrounding slashes."""
    if not tag:
        return ''
    return tag.strip().lstrip('#').strip('/')


def _check_name(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise status.InvalidSettingException(f'Expected a preset name, got {name!r}.')
    return name.strip()


class MappingTables:
    """Read and edit the preset binding tables of a SettingsContext.

    Every mutation reads the table, edits a copy and writes it back through
    ``SettingsContext.update`` under the context lock, so each call produces a single
    change notification. Mutations return an :class:`~CardNavigator.status.status.Outcome`
    and fail with ``Status.InvalidSetting`` on empty folder, tag or preset names.
    """

    def __init__(self, context: SettingsContext) -> None:
        self.context = context

    # Folder candidate lists

    def presets_for_folder(self, folder: str) -> List[str]:
        return self.context['folder_presets'].get(normalize_folder(folder), [])

    @status.outcome
    def add_preset_to_folder(self, folder: str, name: str) -> List[str]:
        folder = normalize_folder(folder)
        name = _check_name(name)
        with self.context.lock:
            table = self.context['folder_presets']
            names = table.setdefault(folder, [])
            if name in names:
                return names
            names.append(name)
            self.context.update({'folder_presets': table})
        logging.debug(f'Added preset "{name}" to folder "{folder}"')
        return names

    @status.outcome
    def remove_preset_from_folder(self, folder: str, name: str) -> List[str]:
        """Remove ``name`` from the folder's candidates.

        If it was the folder's selected preset, the selection moves to the next
        candidate, or is cleared when none remain.
        """
        folder = normalize_folder(folder)
        with self.context.lock:
            table = self.context['folder_presets']
            active = self.context['active_folder_presets']
            names = table.get(folder, [])
            if name not in names:
                return names
            names.remove(name)
            if names:
                table[folder] = names
            else:
                del table[folder]
            if active.get(folder) == name:
                if names:
                    active[folder] = names[0]
                else:
                    del active[folder]
            self.context.update({'folder_presets': table, 'active_folder_presets': active})
        logging.debug(f'Removed preset "{name}" from folder "{folder}"')
        return names

    @status.outcome
    def set_default_preset_for_folder(self, folder: str, name: str) -> List[str]:
        """Move ``name`` to the head of the folder's candidates and select it."""
        folder = normalize_folder(folder)
        name = _check_name(name)
        with self.context.lock:
            table = self.context['folder_presets']
            active = self.context['active_folder_presets']
            names = [name] + [n for n in table.get(folder, []) if n != name]
            table[folder] = names
            active[folder] = name
            self.context.update({'folder_presets': table, 'active_folder_presets': active})
        logging.debug(f'Preset "{name}" is now the default of folder "{folder}"')
        return names

    # Active folder presets

    def active_preset_for_folder(self, folder: str) -> Optional[str]:
        return self.context['active_folder_presets'].get(normalize_folder(folder))

    @status.outcome
    def set_active_folder_preset(self, folder: str, name: str) -> str:
        folder = normalize_folder(folder)
        name = _check_name(name)
        with self.context.lock:
            active = self.context['active_folder_presets']
            active[folder] = name
            self.context.update({'active_folder_presets': active})
        return name

    @status.outcome
    def clear_active_folder_preset(self, folder: str) -> Optional[str]:
        folder = normalize_folder(folder)
        with self.context.lock:
            active = self.context['active_folder_presets']
            name = active.pop(folder, None)
            if name is not None:
                self.context.update({'active_folder_presets': active})
        return name

    def active_folder_presets(self) -> Dict[str, str]:
        return self.context['active_folder_presets']

    def has_folder_mappings(self) -> bool:
        return bool(self.context['active_folder_presets'])

    # Global preset

    def global_preset(self) -> str:
        return self.context['global_preset'] or DEFAULT_PRESET

    @status.outcome
    def set_global_preset(self, name: str) -> str:
        name = _check_name(name)
        self.context.update({'global_preset': name})
        logging.debug(f'Global preset set to "{name}"')
        return name

    # Tags

    def tag_preset(self, tag: str) -> Optional[str]:
        return self.context['tag_presets'].get(normalize_tag(tag))

    def tag_presets(self) -> Dict[str, str]:
        return self.context['tag_presets']

    @status.outcome
    def set_tag_preset(self, tag: str, name: str) -> str:
        tag = normalize_tag(tag)
        if not tag:
            raise status.InvalidSettingException('Tag must not be empty.')
        name = _check_name(name)
        with self.context.lock:
            table = self.context['tag_presets']
            table[tag] = name
            self.context.update({'tag_presets': table})
        logging.debug(f'Tag "#{tag}" bound to preset "{name}"')
        return name

    @status.outcome
    def remove_tag_preset(self, tag: str) -> Optional[str]:
        tag = normalize_tag(tag)
        with self.context.lock:
            table = self.context['tag_presets']
            name = table.pop(tag, None)
            if name is not None:
                self.context.update({'tag_presets': table})
        return name

    # Cascades

    @status.outcome
    def reassign_preset(self, old: str, new: str) -> Set[str]:
        """Point every reference to ``old`` at ``new``.

        Returns:
            Outcome whose value is the set of settings keys that changed.
        """
        new = _check_name(new)
        with self.context.lock:
            folders = self.context['folder_presets']
            active = self.context['active_folder_presets']
            tags = self.context['tag_presets']

            for folder, names in folders.items():
                renamed = []
                for n in names:
                    n = new if n == old else n
                    if n not in renamed:
                        renamed.append(n)
                folders[folder] = renamed
            active = {k: (new if v == old else v) for k, v in active.items()}
            tags = {k: (new if v == old else v) for k, v in tags.items()}

            values = {'folder_presets': folders, 'active_folder_presets': active, 'tag_presets': tags}
            if self.context['global_preset'] == old:
                values['global_preset'] = new

            changed = set(self.context.update(values))

        if changed:
            logging.debug(f'Reassigned references of "{old}" to "{new}": {sorted(changed)}')
        return changed

    @status.outcome
    def drop_preset(self, name: str) -> Set[str]:
        """Remove every reference to a deleted preset.

        The name is removed from folder candidate lists (empty lists are removed) and
        selected, tag and global references fall back to the default preset.

        Returns:
            Outcome whose value is the set of settings keys that changed.
        """
        with self.context.lock:
            folders = {}
            for folder, names in self.context['folder_presets'].items():
                names = [n for n in names if n != name]
                if names:
                    folders[folder] = names

            active = {k: (DEFAULT_PRESET if v == name else v) for k, v in self.context['active_folder_presets'].items()}
            tags = {k: (DEFAULT_PRESET if v == name else v) for k, v in self.context['tag_presets'].items()}

            values = {'folder_presets': folders, 'active_folder_presets': active, 'tag_presets': tags}
            if self.context['global_preset'] == name:
                values['global_preset'] = DEFAULT_PRESET

            changed = set(self.context.update(values))

        if changed:
            logging.debug(f'Dropped references of "{name}": {sorted(changed)}')
        return changed

    def references(self, name: str) -> Dict[str, List[str]]:
        """Return the folders and tags that reference ``name``."""
        return {
            'folders': sorted(f for f, names in self.context['folder_presets'].items() if name in names),
            'active_folders': sorted(f for f, n in self.context['active_folder_presets'].items() if n == name),
            'tags': sorted(t for t, n in self.context['tag_presets'].items() if n == name),
        }
