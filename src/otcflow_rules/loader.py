"""RulePackLoader - fetches, verifies and publishes rule packs.

Trust pipeline::

    manifest.json ─┐
    manifest.sig ──┼─► RSA-PSS/SHA-256 verify ─► for each entry:
    public_key.pem ┘        (abort on fail)        fetch pack → sha256 check
                                                   → normalise
                                                   ─► registry.replace(packs)

Any failure (fetch, signature, checksum, malformed document) aborts the
whole load and raises a :class:`RulePackTrustError` subclass; the registry
keeps whatever it held before.  No partially verified list is published.

``load()`` is memoised: one in-flight load at a time, shared by concurrent
callers, cleared on failure so a later call retries.  ``reload()`` drops the
memo and loads again.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import json
import logging
import re
from typing import Any

import httpx
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from otcflow_rules.constants import (
    HTTP_TIMEOUT,
    MANIFEST_PATH,
    PUBLIC_KEY_PATH,
    SIGNATURE_PATH,
    SIGNATURE_SALT_LENGTH,
)
from otcflow_rules.errors import (
    ChecksumMismatchError,
    ManifestSignatureError,
    RulePackFetchError,
    RulePackFormatError,
)
from otcflow_rules.models.pack import RulePack
from otcflow_rules.ruleset import RulePackRegistry, normalize_pack

logger = logging.getLogger(__name__)

_COMMENT_LINE = re.compile(r"^\s*#.*$", re.MULTILINE)
_NON_BASE64 = re.compile(r"[^A-Za-z0-9+/=]")


# ---------------------------------------------------------------------------
# Crypto helpers
# ---------------------------------------------------------------------------

def decode_signature(content: str) -> bytes:
    """Decode a base64 signature file, ignoring ``#`` comment lines and whitespace."""
    cleaned = _NON_BASE64.sub("", _COMMENT_LINE.sub("", content))
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ManifestSignatureError("Rule manifest signature is not valid base64.") from exc


def compute_checksum(content: bytes) -> str:
    """Return the ``sha256-<hex>`` digest used in manifests."""
    return f"sha256-{hashlib.sha256(content).hexdigest()}"


def verify_signature(manifest: bytes, signature_text: str, public_key_pem: str) -> None:
    """Verify the detached manifest signature.

    Raises:
        ManifestSignatureError: the key is unusable or the signature does not
            match the exact manifest bytes.
    """
    try:
        key = serialization.load_pem_public_key(public_key_pem.encode("utf-8"))
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise ManifestSignatureError("Rule manifest public key is invalid.") from exc
    if not isinstance(key, rsa.RSAPublicKey):
        raise ManifestSignatureError("Rule manifest public key is not an RSA key.")

    signature = decode_signature(signature_text)
    try:
        key.verify(
            signature,
            manifest,
            padding.PSS(
                mgf=padding.MGF1(hashes.SHA256()),
                salt_length=SIGNATURE_SALT_LENGTH,
            ),
            hashes.SHA256(),
        )
    except InvalidSignature as exc:
        raise ManifestSignatureError("Rule manifest signature invalid.") from exc


# ---------------------------------------------------------------------------
# RulePackLoader
# ---------------------------------------------------------------------------

class RulePackLoader:
    """Loads verified rule packs into a :class:`RulePackRegistry`.

    Args:
        registry: where verified packs are published
        base_url: base URL the manifest, signature, key and pack paths are
            relative to (ignored when ``client`` is given with its own base)
        client: optional pre-built ``httpx.AsyncClient`` (tests inject one
            backed by ``httpx.MockTransport``); the loader never closes it
    """

    def __init__(
        self,
        registry: RulePackRegistry,
        *,
        base_url: str = "",
        client: httpx.AsyncClient | None = None,
        manifest_path: str = MANIFEST_PATH,
        signature_path: str = SIGNATURE_PATH,
        public_key_path: str = PUBLIC_KEY_PATH,
        timeout: float = HTTP_TIMEOUT,
    ) -> None:
        self._registry = registry
        self._base_url = base_url
        self._client = client
        self._manifest_path = manifest_path
        self._signature_path = signature_path
        self._public_key_path = public_key_path
        self._timeout = timeout
        self._task: asyncio.Task[list[RulePack]] | None = None

    @property
    def registry(self) -> RulePackRegistry:
        return self._registry

    async def load(self) -> list[RulePack]:
        """Load packs once; concurrent callers share the same in-flight load.

        Raises:
            RulePackTrustError: any fetch, signature, checksum or format
                failure.  The memo is cleared so the next call retries.
        """
        if self._task is None:
            self._task = asyncio.ensure_future(self._load_and_publish())
            self._task.add_done_callback(self._clear_on_failure)
        return await asyncio.shield(self._task)

    async def reload(self) -> list[RulePack]:
        """Drop the memoised load and fetch everything again."""
        self._task = None
        return await self.load()

    def _clear_on_failure(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is not None:
            if self._task is task:
                self._task = None

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _load_and_publish(self) -> list[RulePack]:
        if self._client is not None:
            packs = await self._load(self._client)
        else:
            async with httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout) as client:
                packs = await self._load(client)
        self._registry.replace(packs)
        return packs

    async def _load(self, client: httpx.AsyncClient) -> list[RulePack]:
        manifest = await self._load_manifest(client)
        entries = manifest.get("packs") or []
        if not isinstance(entries, list):
            raise RulePackFormatError('Rule manifest "packs" must be a list.')
        for entry in entries:
            if not isinstance(entry, dict):
                raise RulePackFormatError(f"Manifest entry {entry!r} must be a JSON object.")
            if not isinstance(entry.get("path"), str) or not entry["path"]:
                raise RulePackFormatError(f"Manifest entry {entry.get('id')!r} has no path.")
        packs: list[RulePack] = []
        # Sequential; pack counts are small.
        for entry in entries:
            packs.append(await self._fetch_pack(client, entry))
        logger.info("Loaded %d verified rule packs", len(packs))
        return packs

    async def _load_manifest(self, client: httpx.AsyncClient) -> dict[str, Any]:
        manifest_resp, signature_resp, key_resp = await asyncio.gather(
            self._get(client, self._manifest_path, "rule manifest"),
            self._get(client, self._signature_path, "rule manifest signature"),
            self._get(client, self._public_key_path, "rule manifest public key"),
        )
        try:
            verify_signature(manifest_resp.content, signature_resp.text, key_resp.text)
        except ManifestSignatureError:
            logger.error("Rule manifest signature verification failed")
            raise
        logger.debug("Rule manifest signature verified")

        try:
            manifest = json.loads(manifest_resp.content)
        except json.JSONDecodeError as exc:
            raise RulePackFormatError(f"Rule manifest is not valid JSON: {exc}") from exc
        if not isinstance(manifest, dict):
            raise RulePackFormatError("Rule manifest must be a JSON object.")
        return manifest

    async def _fetch_pack(self, client: httpx.AsyncClient, entry: dict[str, Any]) -> RulePack:
        path = entry["path"]
        response = await self._get(client, path, "rule pack")

        expected = entry.get("checksum")
        if expected:
            actual = compute_checksum(response.content)
            if actual != expected:
                logger.error("Checksum mismatch for %s", path)
                raise ChecksumMismatchError(path, expected, actual)

        try:
            raw = json.loads(response.content)
        except json.JSONDecodeError as exc:
            raise RulePackFormatError(f"Rule pack {path} is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise RulePackFormatError(f"Rule pack {path} must be a JSON object.")
        return normalize_pack(raw, entry)

    async def _get(self, client: httpx.AsyncClient, path: str, what: str) -> httpx.Response:
        try:
            response = await client.get(path)
        except httpx.HTTPError as exc:
            raise RulePackFetchError(f"Unable to load {what} {path} ({exc}).", path=path) from exc
        if response.is_error:
            raise RulePackFetchError(
                f"Unable to load {what} {path} ({response.status_code}).",
                path=path,
                status=response.status_code,
            )
        return response
