"""EPUB container - read-only access to the files inside an EPUB archive."""

import logging
import zipfile
from pathlib import Path
from typing import Union

from bs4 import BeautifulSoup

from epub2bundle.errors import InvalidContainerError, NotFoundError

logger = logging.getLogger(__name__)

CONTAINER_XML_PATH = "META-INF/container.xml"


def normalize_path(path: str) -> str:
    """Strip leading slashes and use forward slashes as separators."""
    return path.replace("\\", "/").lstrip("/")


def resolve_path(base_path: str, relative_path: str) -> str:
    """Resolve ``relative_path`` against the directory of ``base_path``.

    A ``#fragment`` on the relative path is kept as is, so text references
    such as ``chapter.xhtml#para1`` resolve correctly.
    """
    base_dir = base_path[: base_path.rfind("/") + 1]
    path_part, sep, fragment = relative_path.partition("#")

    parts: list[str] = []
    for part in (base_dir + path_part).split("/"):
        if part == "..":
            if parts:
                parts.pop()
        elif part not in ("", "."):
            parts.append(part)

    resolved = "/".join(parts)
    return f"{resolved}#{fragment}" if sep and fragment else resolved


class EpubContainer:
    """Indexed, read-only view of an EPUB zip archive.

    The entry index is built once when the container is opened and never
    changes afterwards, so concurrent ``read_file`` calls are safe.
    """

    def __init__(self, zip_file: zipfile.ZipFile, source: str):
        self._zip = zip_file
        self.source = source
        self._entries: dict[str, zipfile.ZipInfo] = {}
        for info in zip_file.infolist():
            if info.is_dir():
                continue
            self._entries[normalize_path(info.filename)] = info
        self.opf_path = self._find_opf_path()

    def read_file(self, path: str) -> bytes:
        """Return the bytes of an archive entry."""
        info = self._entries.get(normalize_path(path))
        if info is None:
            raise NotFoundError(path)
        return self._zip.read(info)

    def has_file(self, path: str) -> bool:
        return normalize_path(path) in self._entries

    def list_files(self) -> list[str]:
        """Return all file paths in archive order."""
        return list(self._entries.keys())

    def close(self) -> None:
        self._zip.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _find_opf_path(self) -> str:
        """Locate the package document through META-INF/container.xml."""
        if CONTAINER_XML_PATH not in self._entries:
            raise InvalidContainerError(f"EPUB non valido: manca {CONTAINER_XML_PATH}")

        soup = BeautifulSoup(self.read_file(CONTAINER_XML_PATH), "xml")
        rootfile = soup.find("rootfile")
        if rootfile is None:
            raise InvalidContainerError("container.xml non valido: manca l'elemento rootfile")

        full_path = (rootfile.get("full-path") or "").strip()
        if not full_path:
            raise InvalidContainerError("container.xml non valido: rootfile senza full-path")

        opf_path = normalize_path(full_path)
        logger.debug("Package document: %s", opf_path)
        return opf_path


def open_epub(archive_path: Union[str, Path]) -> EpubContainer:
    """Open an EPUB archive and index its entries."""
    try:
        zip_file = zipfile.ZipFile(archive_path)
    except zipfile.BadZipFile as e:
        raise InvalidContainerError(f"EPUB non valido: {archive_path} non è un archivio zip") from e

    try:
        container = EpubContainer(zip_file, str(archive_path))
    except Exception:
        zip_file.close()
        raise

    logger.info("Aperto EPUB '%s' (%d file)", archive_path, len(container.list_files()))
    return container
