import io
import zipfile
from typing import Callable, Dict, List, Optional

import httpx

BASE_URL = "https://example.org/download/psx-collection"


class FakeArchive:
    """
    In-memory file host for httpx.MockTransport.

    Serves the catalogue page, the metadata document and file bodies, honours
    Range headers unless ``ignore_range`` is set, and records every request.
    """

    def __init__(self, files: Optional[Dict[str, bytes]] = None) -> None:
        self.files: Dict[str, bytes] = dict(files or {})
        self.metadata: Optional[dict] = None
        self.ignore_range = False
        self.requests: List[httpx.Request] = []
        self.overrides: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        override = self.overrides.get(path)
        if override is not None:
            return override(request)

        if path.startswith("/metadata/"):
            if self.metadata is None:
                return httpx.Response(404)
            return httpx.Response(200, json=self.metadata)

        name = path.rsplit("/", 1)[-1]
        body = self.files.get(name)
        if body is None:
            # Catalogue page / handshake.
            return httpx.Response(200, text="<html></html>")

        range_header = request.headers.get("range")
        if range_header and not self.ignore_range:
            start = int(range_header.split("=")[1].rstrip("-"))
            return httpx.Response(
                206,
                content=body[start:],
                headers={"Content-Range": f"bytes {start}-{len(body) - 1}/{len(body)}"},
            )
        return httpx.Response(200, content=body)

    def file_requests(self, name: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/" + name)]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def payload(size: int) -> bytes:
    return bytes((i * 7 + 3) % 251 for i in range(size))


DEFLATE64 = 9


def zip_with_unsupported_member(members: Dict[str, bytes], unsupported: str) -> bytes:
    """Stored zip whose *unsupported* member claims Deflate64, which zipfile cannot read."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in members.items():
            zf.writestr(name, data)
        local_offset = zf.getinfo(unsupported).header_offset

    raw = bytearray(buffer.getvalue())
    method = DEFLATE64.to_bytes(2, "little")
    raw[local_offset + 8:local_offset + 10] = method

    encoded = unsupported.encode()
    pos = raw.find(b"PK\x01\x02")
    while pos != -1:
        name_length = int.from_bytes(raw[pos + 28:pos + 30], "little")
        if raw[pos + 46:pos + 46 + name_length] == encoded:
            raw[pos + 10:pos + 12] = method
        pos = raw.find(b"PK\x01\x02", pos + 4)
    return bytes(raw)
