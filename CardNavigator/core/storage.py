"""File storage backend for presets.

Each preset is stored as a single UTF-8 JSON text blob named ``<name>.json`` inside the
preset folder. The backend deals in text only; encoding and validation of presets
happens in :mod:`CardNavigator.settings.presets.store`.

"""
import logging
import pathlib
import re
from typing import List, Union

from ..status import status

BLOB_SUFFIX: str = '.json'
INVALID_NAME_CHARS = re.compile(r'[\\/*?":<>|]')


def validate_name(name: str) -> str:
    """Return ``name`` stripped of surrounding whitespace.

    Raises:
        status.InvalidPresetNameException: If the name is empty, contains characters that
            are not allowed in file names, or starts with a dot.
    """
    if not isinstance(name, str):
        raise status.InvalidPresetNameException(f'Expected a string, got {type(name)}.')
    name = name.strip()
    if not name:
        raise status.InvalidPresetNameException('Name is empty.')
    if INVALID_NAME_CHARS.search(name) or name.startswith('.'):
        raise status.InvalidPresetNameException(f'"{name}"')
    return name


class FileBackend:
    """Read and write named text blobs under a folder.

    Args:
        folder: Directory holding the blobs. Created on first write.
    """

    def __init__(self, folder: Union[str, pathlib.Path]) -> None:
        self.folder: pathlib.Path = pathlib.Path(folder)

    def __repr__(self) -> str:
        return f'<FileBackend folder={str(self.folder)!r}>'

    def set_folder(self, folder: Union[str, pathlib.Path]) -> None:
        logging.debug(f'Preset folder set to "{folder}"')
        self.folder = pathlib.Path(folder)

    def path(self, name: str) -> pathlib.Path:
        return self.folder / f'{validate_name(name)}{BLOB_SUFFIX}'

    def list(self) -> List[str]:
        """Return the names of all stored blobs, sorted.

        Raises:
            OSError: If the folder exists but cannot be listed.
        """
        if not self.folder.exists():
            return []
        return sorted(p.stem for p in self.folder.glob(f'*{BLOB_SUFFIX}') if p.is_file())

    def exists(self, name: str) -> bool:
        return self.path(name).is_file()

    def read(self, name: str) -> str:
        """Return the text stored under ``name``.

        Raises:
            FileNotFoundError: If no blob exists.
            OSError: If the blob cannot be read.
        """
        with self.path(name).open('r', encoding='utf-8') as f:
            return f.read()

    def write(self, name: str, text: str) -> None:
        """Store ``text`` under ``name``, replacing any existing blob.

        The text is written to a temporary file first and moved into place so a failed
        write never leaves a truncated preset behind.
        """
        path = self.path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + '.tmp')
        with tmp_path.open('w', encoding='utf-8') as f:
            f.write(text)
        tmp_path.replace(path)
        logging.debug(f'Wrote "{path}"')

    def delete(self, name: str) -> bool:
        """Remove the blob. Returns False if it did not exist."""
        path = self.path(name)
        if not path.exists():
            return False
        path.unlink()
        logging.debug(f'Removed "{path}"')
        return True
