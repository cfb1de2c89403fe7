import hashlib
import io
import zipfile
from collections import Counter
from typing import Any, Dict, List, Optional

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from loguru import logger

from mminstaller.events import EventEmitter
from mminstaller.models import Manifest
from mminstaller.settings import InstallerSettings


def sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


def make_zip(files: Dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


class FileServer:
    """Serves canned responses by request path and counts hits."""

    def __init__(self):
        self.routes = {}
        self.hits = Counter()
        self.server: Optional[TestServer] = None

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))

    @property
    def total_hits(self) -> int:
        return sum(self.hits.values())

    def add_file(
        self,
        path: str,
        body: bytes,
        headers: Optional[Dict[str, str]] = None,
        chunked: bool = False,
    ):
        async def handler(request: web.Request) -> web.StreamResponse:
            if not chunked:
                return web.Response(body=body, headers=headers or {})
            response = web.StreamResponse(headers=headers or {})
            response.enable_chunked_encoding()
            await response.prepare(request)
            for i in range(0, len(body), 1000):
                await response.write(body[i : i + 1000])
            await response.write_eof()
            return response

        self.routes[path] = handler

    def add_status(self, path: str, status: int, body: str = ""):
        async def handler(request: web.Request) -> web.Response:
            return web.Response(status=status, text=body)

        self.routes[path] = handler

    def add_flaky(self, path: str, failures: int, body: bytes):
        """Answers 503 for the first `failures` requests, then the body."""
        calls = {"n": 0}

        async def handler(request: web.Request) -> web.Response:
            calls["n"] += 1
            if calls["n"] <= failures:
                return web.Response(status=503, text="try again")
            return web.Response(body=body)

        self.routes[path] = handler

    def add_redirect(self, path: str, location: str):
        async def handler(request: web.Request) -> web.Response:
            raise web.HTTPFound(location)

        self.routes[path] = handler

    def add_json(self, path: str, data: Any, status: int = 200):
        async def handler(request: web.Request) -> web.Response:
            return web.json_response(data, status=status)

        self.routes[path] = handler

    async def handle(self, request: web.Request) -> web.StreamResponse:
        self.hits[request.path] += 1
        handler = self.routes.get(request.path)
        if handler is None:
            raise web.HTTPNotFound(text=f"no route for {request.path}")
        return await handler(request)


@pytest.fixture
async def file_server():
    files = FileServer()
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", files.handle)
    files.server = TestServer(app)
    await files.server.start_server()
    yield files
    await files.server.close()


@pytest.fixture
def settings(tmp_path) -> InstallerSettings:
    return InstallerSettings(
        install_dir=tmp_path / "instance",
        minecraft_dir=tmp_path / "minecraft",
        max_retries=0,
        retry_delay=0,
    )


@pytest.fixture
def events():
    """Records every emitted event in order."""
    emitter = EventEmitter()
    received: List = []
    emitter.subscribe(received.append)
    emitter.received = received
    return emitter


@pytest.fixture
def log_messages():
    messages: List[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


LOADER_BODY = b"loader-installer-jar" * 50
MOD_A_BODY = b"mod-a-content" * 200
MOD_B_BODY = b"mod-b-content" * 300
RESOURCE_BODY = b"options.txt contents\n" * 20


def pack_data(files: FileServer, **overrides) -> Dict[str, Any]:
    """A 1 loader + 2 mods + 1 resource manifest served by `files`."""
    files.add_file("/loader/forge-installer.jar", LOADER_BODY)
    files.add_file("/mods/mod-a.jar", MOD_A_BODY)
    files.add_file("/mods/mod-b.jar", MOD_B_BODY)
    files.add_file("/res/options.txt", RESOURCE_BODY)

    data = {
        "schemaVersion": 2,
        "packVersion": "1.0.0",
        "profile": {"name": "Test Pack", "icon": "Furnace", "version": "1.20.1-forge"},
        "modLoader": {
            "name": "Forge",
            "url": files.url("/loader/forge-installer.jar"),
            "hash": sha1(LOADER_BODY),
        },
        "mods": [
            {
                "name": "Mod A",
                "type": "direct",
                "url": files.url("/mods/mod-a.jar"),
                "hash": sha1(MOD_A_BODY),
            },
            {
                "name": "Mod B",
                "type": "direct",
                "url": files.url("/mods/mod-b.jar"),
                "hash": sha1(MOD_B_BODY).upper(),
                "side": "client",
            },
        ],
        "resources": [
            {
                "name": "Options",
                "type": "direct",
                "url": files.url("/res/options.txt"),
                "hash": sha1(RESOURCE_BODY),
                "targetDir": "config/defaults",
            }
        ],
    }
    data.update(overrides)
    return data


@pytest.fixture
def pack(file_server) -> Manifest:
    return Manifest.from_dict(pack_data(file_server))
