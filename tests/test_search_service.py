import httpx
import pytest

from fakes import BASE_URL
from models.system_profile import PS2, PSX
from services import locale_filter
from services.exceptions import CatalogFetchError
from services.search_service import clean_title, fetch_catalogue, safe_folder_name

METADATA = {
    "files": [
        {"name": "Tekken 3 (USA).7z", "size": "512000000"},
        {"name": "Ape Escape (Europe) (En,Fr).zip", "size": 300000000},
        {"name": "Parasite Eve (Japan).rar", "size": "123"},
        {"name": "psx-collection_archive.torrent"},
        {"name": "SCPH-1001 BIOS.zip", "size": "524288"},
        {"name": "psx-collection_files.xml.zip"},
        {"name": "__ia_thumb.jpg"},
        {"name": "Crash Bandicoot (World).cue"},
        {"name": "Tekken 3 (USA).7z", "size": "512000000"},
    ]
}


def test_metadata_endpoint_is_derived_from_download_url(session, fake_archive):
    fake_archive.metadata = METADATA
    fetch_catalogue(session, BASE_URL, PSX)
    paths = [r.url.path for r in fake_archive.requests]
    assert "/metadata/psx-collection" in paths


def test_filters_to_recognised_game_files(session, fake_archive):
    fake_archive.metadata = METADATA
    entries = fetch_catalogue(session, BASE_URL, PSX)

    assert [e.file_name for e in entries] == [
        "Tekken 3 (USA).7z",
        "Ape Escape (Europe) (En,Fr).zip",
        "Parasite Eve (Japan).rar",
    ]
    tekken = entries[0]
    assert tekken.size_bytes == 512000000
    assert tekken.title == "Tekken 3"
    assert tekken.is_compressed
    assert tekken.url == f"{BASE_URL}/Tekken%203%20(USA).7z"


def test_raw_images_are_not_compressed_for_ps2(session, fake_archive):
    fake_archive.metadata = {"files": [{"name": "Okami (USA).iso", "size": 10}, {"name": "Okami (USA).7z"}]}
    entries = fetch_catalogue(session, BASE_URL, PS2)
    assert [(e.file_name, e.is_compressed) for e in entries] == [
        ("Okami (USA).iso", False),
        ("Okami (USA).7z", True),
    ]


def test_locale_filter(session, fake_archive):
    fake_archive.metadata = METADATA
    english = fetch_catalogue(session, BASE_URL, PSX, locale="en")
    japanese = fetch_catalogue(session, BASE_URL, PSX, locale="jp")

    assert [e.title for e in english] == ["Tekken 3", "Ape Escape"]
    assert [e.title for e in japanese] == ["Parasite Eve"]


def test_missing_metadata_is_fatal(session, fake_archive):
    with pytest.raises(CatalogFetchError):
        fetch_catalogue(session, BASE_URL, PSX)


def test_metadata_without_files_array_is_fatal(session, fake_archive):
    fake_archive.metadata = {"dir": "/x"}
    with pytest.raises(CatalogFetchError):
        fetch_catalogue(session, BASE_URL, PSX)


def test_invalid_json_is_fatal(session, fake_archive):
    fake_archive.overrides["/metadata/psx-collection"] = lambda r: httpx.Response(200, text="<html>")
    with pytest.raises(CatalogFetchError):
        fetch_catalogue(session, BASE_URL, PSX)


def test_network_failure_is_fatal(session, fake_archive):
    def down(request):
        raise httpx.ConnectError("unreachable", request=request)

    fake_archive.overrides["/metadata/psx-collection"] = down
    with pytest.raises(CatalogFetchError):
        fetch_catalogue(session, BASE_URL, PSX)


INDEX_HTML = """
<html><body><table>
<tr><td><a href="../">Parent directory/</a></td><td>-</td></tr>
<tr><td><a href="Silent%20Hill%20%28USA%29.zip">Silent Hill (USA).zip</a></td>
    <td class="size">412.5 MiB</td><td class="date">2023-01-01 10:00</td></tr>
<tr><td><a href="Vib-Ribbon%20%28Japan%29.zip">Vib-Ribbon (Japan).zip</a></td>
    <td class="size">1.2 GiB</td></tr>
<tr><td><a href="readme.txt">readme.txt</a></td><td>1 KiB</td></tr>
<tr><td><a href="https://elsewhere.example/x.zip">offsite</a></td></tr>
</table></body></html>
"""


def test_html_directory_index(fake_archive):
    from services.http_session import ArchiveSession

    url = "https://files.example.org/files/Redump/Sony%20-%20PlayStation"
    fake_archive.overrides["/files/Redump/Sony - PlayStation/"] = lambda r: httpx.Response(
        200, text=INDEX_HTML
    )
    with ArchiveSession(url, transport=fake_archive.transport()) as session:
        entries = fetch_catalogue(session, url, PSX)

    assert [e.file_name for e in entries] == ["Silent Hill (USA).zip", "Vib-Ribbon (Japan).zip"]
    assert entries[0].size_bytes == int(412.5 * 1024 ** 2)
    assert entries[1].size_bytes == int(1.2 * 1024 ** 3)
    assert entries[0].url == f"{url}/Silent%20Hill%20(USA).zip"


@pytest.mark.parametrize(
    "file_name, title",
    [
        ("Tekken 3 (USA) [SLUS-00402].7z", "Tekken 3"),
        ("Final_Fantasy_VII (Disc 1).zip", "Final Fantasy VII"),
        ("  Spaced   Out  (Europe).rar", "Spaced Out"),
        ("sub/dir/Game (Japan).zip", "Game"),
    ],
)
def test_clean_title(file_name, title):
    assert clean_title(file_name) == title


def test_safe_folder_name_strips_and_caps():
    assert safe_folder_name('What: "Is" <This>?') == "What Is This"
    assert len(safe_folder_name("x" * 100)) == 60
    assert safe_folder_name("", fallback="(USA).7z") == "(USA)"


def test_locale_detection():
    assert locale_filter.detect_locale("Game (World).zip") == locale_filter.ALL
    assert locale_filter.detect_locale("Game (Germany).zip") == locale_filter.EUROPEAN
    assert locale_filter.matches_locale("Game (Germany).zip", "en")
    assert not locale_filter.matches_locale("Game (Japan).zip", "eu")
    assert locale_filter.matches_locale("Untagged.zip", "jp")
