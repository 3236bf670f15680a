"""
services/search_service.py – Remote catalogue loading.

Two catalogue shapes are understood:

* archive.org items (``…/download/<item>``): the JSON metadata endpoint
  (``…/metadata/<item>``) lists every file with its size.
* Plain HTML directory indexes (myrient and Apache-style listings): each
  anchor pointing at a recognised file becomes an entry.

Only files the SystemProfile recognises as games survive; torrents, BIOS dumps
and thumbnail sheets are dropped by name.
"""

import json
import logging
import re
from pathlib import PurePosixPath
from typing import List, Optional
from urllib.parse import quote, unquote, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from models.game_entry import RemoteCatalogEntry
from models.system_profile import SystemProfile
from services import locale_filter
from services.exceptions import CatalogFetchError, TooManyRedirectsError
from services.http_session import ArchiveSession

logger = logging.getLogger(__name__)

# ── Configuration ────────────────────────────────────────────────────────────

DOWNLOAD_SEGMENT: str = "/download/"
METADATA_SEGMENT: str = "/metadata/"

# Characters left unescaped when building download URLs.
URL_SAFE_CHARS: str = "/()[]!,'&+~"

_TAG_PATTERN = re.compile(r"\s*[\(\[].*?[\)\]]")
_UNSAFE_FOLDER_CHARS = re.compile(r'[<>:"/\\|?*]')
_WHITESPACE = re.compile(r"\s+")
_SIZE_PATTERN = re.compile(r"^\s*([\d.,]+)\s*([KMGT]?i?B?)\s*$", re.IGNORECASE)

MAX_FOLDER_NAME_LENGTH: int = 60

# ── Public API ───────────────────────────────────────────────────────────────


def fetch_catalogue(
    session: ArchiveSession,
    catalog_url: str,
    profile: SystemProfile,
    locale: Optional[str] = None,
) -> List[RemoteCatalogEntry]:
    """
    Download and parse the catalogue at *catalog_url*.

    Returns
    -------
    List[RemoteCatalogEntry]
        Filtered entries in catalogue order; may be empty when the catalogue
        holds no files for this system.

    Raises
    ------
    CatalogFetchError
        On any network, HTTP or parse failure.
    """
    base_url = catalog_url.rstrip("/")
    session.initialize()

    if DOWNLOAD_SEGMENT in base_url:
        metadata_url = base_url.replace(DOWNLOAD_SEGMENT, METADATA_SEGMENT, 1)
        files = _parse_metadata(_fetch(session, metadata_url))
    else:
        response = _fetch(session, base_url + "/")
        files = _parse_index(response.text, str(response.url))

    entries: List[RemoteCatalogEntry] = []
    seen: set = set()
    for file_name, size in files:
        if not profile.is_catalog_file(file_name):
            continue
        if not locale_filter.matches_locale(file_name, locale):
            continue
        if file_name in seen:
            continue
        seen.add(file_name)
        entries.append(
            RemoteCatalogEntry(
                file_name=file_name,
                url=f"{base_url}/{quote(file_name, safe=URL_SAFE_CHARS)}",
                size_bytes=size,
                title=clean_title(file_name),
                is_compressed=profile.is_compressed(file_name),
            )
        )

    logger.info("Loaded %d games from %s", len(entries), base_url)
    return entries


def clean_title(file_name: str) -> str:
    """``Tekken 3 (USA) [SLUS-00402].7z`` → ``Tekken 3``."""
    name = PurePosixPath(file_name).stem
    name = _TAG_PATTERN.sub("", name)
    name = name.replace("_", " ")
    return _WHITESPACE.sub(" ", name).strip()


def safe_folder_name(title: str, fallback: str = "game") -> str:
    """Filesystem-safe, length-capped cache folder name for *title*."""
    safe = _UNSAFE_FOLDER_CHARS.sub("", title)
    safe = _WHITESPACE.sub(" ", safe).strip()
    if len(safe) > MAX_FOLDER_NAME_LENGTH:
        safe = safe[:MAX_FOLDER_NAME_LENGTH].strip()
    # Trailing dots are silently dropped by Windows.
    safe = safe.rstrip(". ")
    if not safe:
        safe = _UNSAFE_FOLDER_CHARS.sub("", PurePosixPath(fallback).stem).strip() or "game"
    return safe


# ── Private helpers ───────────────────────────────────────────────────────────


def _fetch(session: ArchiveSession, url: str) -> httpx.Response:
    try:
        response = session.get_text(url)
    except TooManyRedirectsError as exc:
        raise CatalogFetchError(f"Catalogue redirected too many times: {exc}") from exc
    except httpx.HTTPError as exc:
        raise CatalogFetchError(f"Network error while fetching catalogue: {exc}") from exc

    if not response.is_success:
        raise CatalogFetchError(
            f"Catalogue server returned HTTP {response.status_code} for {url}."
        )
    return response


def _parse_metadata(response: httpx.Response) -> List[tuple]:
    try:
        document = json.loads(response.text)
    except ValueError as exc:
        raise CatalogFetchError(f"Catalogue metadata is not valid JSON: {exc}") from exc

    files = document.get("files") if isinstance(document, dict) else None
    if not isinstance(files, list):
        raise CatalogFetchError("Catalogue metadata has no 'files' array.")

    result = []
    for item in files:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        if not isinstance(name, str) or not name:
            continue
        result.append((name, _parse_size_value(item.get("size"))))
    return result


def _parse_index(html: str, page_url: str) -> List[tuple]:
    soup = BeautifulSoup(html, "html.parser")
    page_path = urlparse(page_url).path
    result = []
    for anchor in soup.find_all("a", href=True):
        href: str = anchor["href"].strip()
        if not href or href.startswith(("?", "#")) or href.endswith("/"):
            continue
        absolute = urljoin(page_url, href)
        path = urlparse(absolute).path
        # Only direct children of the listed directory.
        if not path.startswith(page_path):
            continue
        name = unquote(path[len(page_path):])
        if not name or "/" in name:
            continue

        size = 0
        row = anchor.find_parent("tr")
        if row is not None:
            for cell in row.find_all("td"):
                parsed = _parse_size_text(cell.get_text(strip=True))
                if parsed:
                    size = parsed
                    break
        result.append((name, size))
    return result


def _parse_size_value(value) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 0


_SIZE_UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3, "T": 1024 ** 4}


def _parse_size_text(text: str) -> int:
    """Parse listing sizes such as ``712.4 MiB`` or ``1.2G``; 0 when unknown."""
    match = _SIZE_PATTERN.match(text)
    if not match:
        return 0
    number, unit = match.groups()
    if not unit:
        # A bare number in a listing row is usually a date or count column.
        return 0
    try:
        value = float(number.replace(",", ""))
    except ValueError:
        return 0
    return int(value * _SIZE_UNITS.get(unit[0].upper(), 1))
