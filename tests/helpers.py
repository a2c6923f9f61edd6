"""Test helpers: synthetic layers and an in-process fake registry."""

import asyncio
import base64
import io
import json
import tarfile
from typing import Optional

from aiohttp import web

from fleet_build_client.core.manifests import MANIFEST_V2
from fleet_build_client.core.types import LayerBlob
from fleet_build_client.utils.digest import calculate_digest

LAYER_MEDIA_TYPE = "application/vnd.docker.image.rootfs.diff.tar.gzip"


def dir_entry(name: str, mode: int = 0o755) -> tuple[tarfile.TarInfo, Optional[bytes]]:
    info = tarfile.TarInfo(name)
    info.type = tarfile.DIRTYPE
    info.mode = mode
    return info, None


def file_entry(
    name: str, data: bytes = b"", mode: int = 0o644
) -> tuple[tarfile.TarInfo, Optional[bytes]]:
    info = tarfile.TarInfo(name)
    info.size = len(data)
    info.mode = mode
    return info, data


def symlink_entry(name: str, target: str) -> tuple[tarfile.TarInfo, Optional[bytes]]:
    info = tarfile.TarInfo(name)
    info.type = tarfile.SYMTYPE
    info.linkname = target
    return info, None


def hardlink_entry(name: str, target: str) -> tuple[tarfile.TarInfo, Optional[bytes]]:
    info = tarfile.TarInfo(name)
    info.type = tarfile.LNKTYPE
    info.linkname = target
    return info, None


def make_layer(*entries: tuple[tarfile.TarInfo, Optional[bytes]]) -> LayerBlob:
    """Build a gzip-compressed layer blob from entries, in archive order."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz", format=tarfile.PAX_FORMAT) as tar:
        for info, data in entries:
            tar.addfile(info, io.BytesIO(data) if data is not None else None)
    data = buffer.getvalue()
    return LayerBlob(digest=calculate_digest(data), data=data)


def make_manifest(layers: list[LayerBlob]) -> dict:
    config = b"{}"
    return {
        "schemaVersion": 2,
        "mediaType": MANIFEST_V2,
        "config": {
            "mediaType": "application/vnd.docker.container.image.v1+json",
            "size": len(config),
            "digest": calculate_digest(config),
        },
        "layers": [
            {"mediaType": LAYER_MEDIA_TYPE, "size": blob.size, "digest": blob.digest}
            for blob in layers
        ],
    }


class FakeRegistry:
    """Registry v2 server with bearer token auth, served by aiohttp."""

    def __init__(self, username: str = "d_abc123", password: str = "device-key") -> None:
        self.username = username
        self.password = password
        self.token = "registry-token"
        self.require_auth = True
        self.blobs: dict[str, bytes] = {}
        self.manifests: dict[tuple[str, str], dict] = {}
        self.failing: set[str] = set()
        self.gated: set[str] = set()
        self.gate = asyncio.Event()
        self.wait_for: dict[str, str] = {}
        self.completed: list[str] = []
        self.token_scopes: list[str] = []
        self.blob_auth_headers: list[Optional[str]] = []
        self._done: dict[str, asyncio.Event] = {}

    def add_image(self, repository: str, layers: list[LayerBlob], tag: str = "latest") -> dict:
        for blob in layers:
            self.blobs[blob.digest] = blob.data
        manifest = make_manifest(layers)
        self.manifests[(repository, tag)] = manifest
        return manifest

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/v2/", self.api_root)
        app.router.add_get("/token", self.issue_token)
        app.router.add_get(r"/v2/{name:.+}/manifests/{reference}", self.get_manifest)
        app.router.add_get(r"/v2/{name:.+}/blobs/{digest}", self.get_blob)
        return app

    def _authorized(self, request: web.Request) -> bool:
        if not self.require_auth:
            return True
        return request.headers.get("Authorization") == f"Bearer {self.token}"

    def _done_event(self, digest: str) -> asyncio.Event:
        return self._done.setdefault(digest, asyncio.Event())

    async def api_root(self, request: web.Request) -> web.Response:
        headers = {"Docker-Distribution-API-Version": "registry/2.0"}
        if self._authorized(request):
            return web.json_response({}, headers=headers)
        headers["WWW-Authenticate"] = (
            f'Bearer realm="{request.url.origin()}/token",service="fake-registry"'
        )
        return web.json_response({"errors": []}, status=401, headers=headers)

    async def issue_token(self, request: web.Request) -> web.Response:
        scheme, _, encoded = request.headers.get("Authorization", "").partition(" ")
        try:
            credentials = base64.b64decode(encoded, validate=True).decode("utf-8")
        except ValueError:
            return web.json_response({}, status=401)
        if scheme != "Basic" or credentials != f"{self.username}:{self.password}":
            return web.json_response({}, status=401)
        self.token_scopes.append(request.query.get("scope", ""))
        return web.json_response({"token": self.token})

    async def get_manifest(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return web.json_response({}, status=401)
        key = (request.match_info["name"], request.match_info["reference"])
        if key not in self.manifests:
            return web.json_response({"errors": [{"code": "MANIFEST_UNKNOWN"}]}, status=404)
        manifest = self.manifests[key]
        return web.Response(
            body=json.dumps(manifest).encode("utf-8"),
            content_type=manifest.get("mediaType", MANIFEST_V2),
        )

    async def get_blob(self, request: web.Request) -> web.Response:
        self.blob_auth_headers.append(request.headers.get("Authorization"))
        if not self._authorized(request):
            return web.json_response({}, status=401)

        digest = request.match_info["digest"]
        dependency = self.wait_for.get(digest)
        if dependency is not None:
            await self._done_event(dependency).wait()
        if digest in self.gated:
            await self.gate.wait()
        if digest in self.failing or digest not in self.blobs:
            return web.json_response({}, status=500)

        self.completed.append(digest)
        self._done_event(digest).set()
        return web.Response(body=self.blobs[digest])
