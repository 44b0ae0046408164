"""Git smart-HTTP transport — implements the RepoTransport port.

Speaks protocol v0 of ``git-upload-pack`` over the shared ``httpx`` client:
one ref discovery ``GET`` and one ``POST`` asking for the default branch at
depth 1.  Pack data is demultiplexed from side-band channel 1 straight into
a dulwich object store, then the commit tree is written out by
:mod:`repo_line_counter.infrastructure.pack_checkout`.  Repository
initialisation, pack writes and pack indexing all run through the shared
filesystem gate.

Every response body is iterated through the caller's ``stream_hook``.  When
the hook raises, the exception unwinds through ``client.stream(...)``, which
closes the response and its connection.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urljoin, urlsplit

import httpx
from dulwich.errors import GitProtocolError
from dulwich.object_store import BaseObjectStore
from dulwich.protocol import PktLineParser, pkt_line
from dulwich.repo import Repo

from repo_line_counter.domain.exceptions import (
    EmptyRepositoryError,
    RepositoryFetchError,
    RepositoryNotFoundError,
)
from repo_line_counter.domain.ports.repo_transport import StreamHook
from repo_line_counter.domain.value_objects import SourceLocation
from repo_line_counter.infrastructure.pack_checkout import checkout_tree
from repo_line_counter.services.concurrency_gate import ConcurrencyGate

logger = logging.getLogger(__name__)

_SERVICE = "git-upload-pack"
_ADVERTISEMENT_TYPE = "application/x-git-upload-pack-advertisement"
_REQUEST_TYPE = "application/x-git-upload-pack-request"
_RESULT_TYPE = "application/x-git-upload-pack-result"
_AGENT = b"repo-line-counter/1.0"
_USER_AGENT = "git/2.0 (repo-line-counter/1.0)"
_ZERO_SHA = b"0" * 40
_MAX_REDIRECTS = 3

# Raised by PktLineParser on a bad length prefix, depending on the dulwich release.
_PKT_LINE_ERRORS = (ValueError, GitProtocolError)

_CHANNEL_PACK = 1
_CHANNEL_PROGRESS = 2
_CHANNEL_ERROR = 3


def _init_repo(dest: Path) -> Repo:
    return Repo.init(str(dest))


# ── Ref advertisement ───────────────────────────────────────────────────────


@dataclass(slots=True)
class RefAdvertisement:
    """Refs and capabilities announced by ``info/refs``."""

    refs: dict[bytes, bytes] = field(default_factory=dict)
    capabilities: set[bytes] = field(default_factory=set)

    @property
    def head(self) -> bytes | None:
        return self.refs.get(b"HEAD")

    @property
    def default_branch(self) -> str | None:
        """Target of ``HEAD`` from the ``symref`` capability, if announced."""
        for cap in self.capabilities:
            if cap.startswith(b"symref=HEAD:"):
                return cap[len(b"symref=HEAD:"):].decode("utf-8", "replace")
        return None


def parse_advertisement(packets: list[bytes | None]) -> RefAdvertisement:
    """Build a :class:`RefAdvertisement` from raw pkt-line payloads.

    ``None`` stands for a flush-pkt.  The smart-HTTP ``# service=`` banner
    and its trailing flush are optional.
    """
    lines = list(packets)
    if lines and lines[0] is not None and lines[0].startswith(b"# service="):
        lines = lines[1:]
        if lines and lines[0] is None:
            lines = lines[1:]

    adv = RefAdvertisement()
    for index, pkt in enumerate(lines):
        if pkt is None:
            break
        if pkt.startswith(b"ERR "):
            raise RepositoryFetchError(
                f"Remote error: {pkt[4:].decode('utf-8', 'replace').strip()}"
            )
        pkt = pkt.rstrip(b"\n")
        if index == 0 and b"\x00" in pkt:
            pkt, caps = pkt.split(b"\x00", 1)
            adv.capabilities.update(caps.split())
        sha, _, name = pkt.partition(b" ")
        if len(sha) != 40 or not name:
            raise RepositoryFetchError("Malformed ref advertisement from server")
        if sha == _ZERO_SHA:
            continue  # "capabilities^{}" placeholder of an empty repository
        adv.refs[name] = sha
    return adv


# ── Upload-pack response ────────────────────────────────────────────────────


class UploadPackReader:
    """Incremental parser for a stateless ``git-upload-pack`` response.

    Expected order: ``shallow`` lines and a flush (because we deepen), a
    ``NAK``, then side-band packets until the final flush.
    """

    def __init__(self, write_pack: Callable[[bytes], object]) -> None:
        self._write_pack = write_pack
        self._parser = PktLineParser(self._handle)
        self._in_pack = False
        self.shallow: list[bytes] = []
        self.pack_bytes = 0
        self.done = False

    def feed(self, data: bytes) -> None:
        try:
            self._parser.parse(data)
        except _PKT_LINE_ERRORS as exc:
            raise RepositoryFetchError(f"Malformed upload-pack response: {exc}") from exc

    def _handle(self, pkt: bytes | None) -> None:
        if self.done:
            return
        if pkt is None:
            if self._in_pack:
                self.done = True
            return
        if pkt.startswith(b"ERR "):
            raise RepositoryFetchError(
                f"Remote error: {pkt[4:].decode('utf-8', 'replace').strip()}"
            )

        if not self._in_pack:
            if pkt.startswith(b"shallow "):
                self.shallow.append(pkt[8:48])
            elif pkt.startswith((b"NAK", b"ACK")):
                self._in_pack = True
            elif not pkt.startswith(b"unshallow "):
                raise RepositoryFetchError(
                    f"Unexpected upload-pack response line: {pkt[:40]!r}"
                )
            return

        if not pkt:
            return
        channel, payload = pkt[0], pkt[1:]
        if channel == _CHANNEL_PACK:
            self._write_pack(payload)
            self.pack_bytes += len(payload)
        elif channel == _CHANNEL_PROGRESS:
            logger.debug("remote: %s", payload.decode("utf-8", "replace").strip())
        elif channel == _CHANNEL_ERROR:
            raise RepositoryFetchError(
                f"Remote error: {payload.decode('utf-8', 'replace').strip()}"
            )
        else:
            raise RepositoryFetchError(f"Unknown side-band channel {channel}")


def build_upload_request(want: bytes, capabilities: set[bytes]) -> bytes:
    """Request body for a depth-1 fetch of *want*."""
    caps = [b"side-band-64k", b"shallow", b"no-progress"]
    if b"ofs-delta" in capabilities:
        caps.append(b"ofs-delta")
    caps.append(b"agent=" + _AGENT)
    return b"".join(
        [
            pkt_line(b"want " + want + b" " + b" ".join(caps) + b"\n"),
            pkt_line(b"deepen 1\n"),
            pkt_line(None),
            pkt_line(b"done\n"),
        ]
    )


# ── Transport ───────────────────────────────────────────────────────────────


class GitSmartHttpTransport:
    """Concrete ``RepoTransport`` performing shallow single-branch clones.

    Parameters
    ----------
    client:
        Shared ``httpx.AsyncClient``; redirects are handled here, never by
        the client, so they cannot leave the validated host.
    gate:
        Filesystem concurrency gate used while writing the checkout.
    max_file_size_bytes:
        Blobs above this size are not written to disk.
    max_checkout_bytes:
        Ceiling on the total bytes written to disk.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        gate: ConcurrencyGate,
        *,
        max_file_size_bytes: int,
        max_checkout_bytes: int,
    ) -> None:
        self._client = client
        self._gate = gate
        self._max_file_size = max_file_size_bytes
        self._max_checkout = max_checkout_bytes

    async def shallow_clone(
        self, location: SourceLocation, dest: Path, *, stream_hook: StreamHook
    ) -> None:
        base, adv = await self._discover_refs(location, stream_hook)

        head = adv.head
        if head is None:
            if not adv.refs:
                raise EmptyRepositoryError(f"Repository {location} is empty.")
            raise RepositoryFetchError(f"Repository {location} does not advertise HEAD.")
        for required in (b"shallow", b"side-band-64k"):
            if required not in adv.capabilities:
                raise RepositoryFetchError(
                    f"Server does not support '{required.decode()}' fetches."
                )
        logger.info(
            "Fetching %s at %s (%s)",
            location, head.decode(), adv.default_branch or "HEAD",
        )

        repo = await self._gate.run_blocking(_init_repo, dest)
        try:
            await self._fetch_pack(base, head, adv.capabilities, repo.object_store, stream_hook)
            stats = await checkout_tree(
                repo.object_store,
                head,
                dest,
                gate=self._gate,
                max_file_size_bytes=self._max_file_size,
                max_total_bytes=self._max_checkout,
            )
        finally:
            repo.close()

        logger.info(
            "Checked out %d files (%d bytes, %d entries skipped) from %s",
            stats.files_written, stats.bytes_written, stats.entries_skipped, location,
        )

    # ── Ref discovery ───────────────────────────────────────────────────

    async def _discover_refs(
        self, location: SourceLocation, stream_hook: StreamHook
    ) -> tuple[str, RefAdvertisement]:
        """GET info/refs, following same-host redirects only."""
        base = location.clone_url
        for _ in range(_MAX_REDIRECTS + 1):
            url = f"{base}/info/refs"
            packets: list[bytes | None] = []
            parser = PktLineParser(packets.append)
            try:
                async with self._client.stream(
                    "GET",
                    url,
                    params={"service": _SERVICE},
                    headers={"User-Agent": _USER_AGENT},
                    follow_redirects=False,
                ) as resp:
                    if resp.is_redirect:
                        base = self._redirect_base(location, url, resp)
                        continue
                    self._check_response(resp, location, _ADVERTISEMENT_TYPE)
                    async for chunk in stream_hook(resp.aiter_bytes()):
                        parser.parse(chunk)
            except httpx.HTTPError as exc:
                raise RepositoryFetchError(f"Network error fetching {url}: {exc}") from exc
            except _PKT_LINE_ERRORS as exc:
                raise RepositoryFetchError(f"Malformed ref advertisement: {exc}") from exc
            return base, parse_advertisement(packets)

        raise RepositoryFetchError(f"Too many redirects fetching {location}")

    @staticmethod
    def _redirect_base(location: SourceLocation, url: str, resp: httpx.Response) -> str:
        target = urljoin(url, resp.headers.get("location", ""))
        parts = urlsplit(target)
        if (parts.hostname or "").lower() != location.host or parts.scheme not in ("http", "https"):
            raise RepositoryFetchError(
                f"Refusing redirect from {location.host} to {parts.hostname or target}"
            )
        path = parts.path
        if not path.endswith("/info/refs"):
            raise RepositoryFetchError(f"Unexpected redirect target {target}")
        return f"{parts.scheme}://{parts.netloc}{path[: -len('/info/refs')]}"

    # ── Pack fetch ──────────────────────────────────────────────────────

    async def _fetch_pack(
        self,
        base: str,
        head: bytes,
        capabilities: set[bytes],
        store: BaseObjectStore,
        stream_hook: StreamHook,
    ) -> None:
        url = f"{base}/{_SERVICE}"
        pack_file, commit, abort = store.add_pack()
        reader = UploadPackReader(pack_file.write)
        try:
            async with self._client.stream(
                "POST",
                url,
                content=build_upload_request(head, capabilities),
                headers={
                    "User-Agent": _USER_AGENT,
                    "Content-Type": _REQUEST_TYPE,
                    "Accept": _RESULT_TYPE,
                },
                follow_redirects=False,
            ) as resp:
                self._check_response(resp, None, _RESULT_TYPE)
                async for chunk in stream_hook(resp.aiter_bytes()):
                    await self._gate.run_blocking(reader.feed, chunk)
        except httpx.HTTPError as exc:
            abort()
            raise RepositoryFetchError(f"Network error fetching {url}: {exc}") from exc
        except BaseException:
            abort()
            raise

        if not reader.done or reader.pack_bytes == 0:
            abort()
            raise RepositoryFetchError("Upload-pack response ended before the pack completed.")

        try:
            await self._gate.run_blocking(commit)
        except Exception as exc:
            raise RepositoryFetchError(f"Received an invalid pack: {exc}") from exc
        logger.debug(
            "Stored pack of %d bytes (%d shallow roots)", reader.pack_bytes, len(reader.shallow)
        )

    # ── Response checks ─────────────────────────────────────────────────

    @staticmethod
    def _check_response(
        resp: httpx.Response, location: SourceLocation | None, expected_type: str
    ) -> None:
        """Translate HTTP status and content type into domain errors."""
        if resp.status_code in (401, 403, 404):
            raise RepositoryNotFoundError(
                "Repository not found. Make sure the URL points to a public repository."
            )
        if resp.status_code == 429:
            raise RepositoryFetchError("Git host rate limit exceeded (HTTP 429).")
        if resp.status_code != 200:
            raise RepositoryFetchError(
                f"Git host returned HTTP {resp.status_code} for {resp.request.url}"
            )
        content_type = resp.headers.get("content-type", "")
        if not content_type.startswith(expected_type):
            where = f" at {location}" if location else ""
            raise RepositoryFetchError(
                f"No git smart-HTTP service{where} (content type '{content_type}')."
            )
