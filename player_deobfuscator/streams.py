"""Assemble playable stream URLs on top of :class:`JavaScriptPlayerManager`.

These helpers implement the caller-level policy around the core: signature
ciphers are turned into signed URLs, throttling decryption falls back to the
untransformed URL and optional proof-of-origin tokens are appended verbatim.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Protocol, Union, runtime_checkable
from urllib.parse import parse_qsl

from .exceptions import DeobfuscationError, ExtractionError
from .manager import JavaScriptPlayerManager

LOG = logging.getLogger(__name__)

DEFAULT_SIGNATURE_PARAMETER = "signature"
PO_TOKEN_PARAMETER = "pot"


def parse_signature_cipher(cipher: str) -> Dict[str, str]:
    """Decode a ``signatureCipher`` query string into its ``s``/``sp``/``url`` parts."""

    return dict(parse_qsl(cipher, keep_blank_values=True))


def build_signed_url(
    manager: JavaScriptPlayerManager,
    identity: str,
    cipher: Union[str, Mapping[str, str]],
) -> str:
    """Return ``url&sp=<deobfuscated s>`` for a signature cipher."""

    components = parse_signature_cipher(cipher) if isinstance(cipher, str) else dict(cipher)
    url = components.get("url")
    if not url:
        raise ExtractionError("signature cipher does not contain a url")
    obfuscated = components.get("s")
    if obfuscated is None:
        raise ExtractionError("signature cipher does not contain an obfuscated signature")
    parameter = components.get("sp") or DEFAULT_SIGNATURE_PARAMETER
    signature = manager.deobfuscate_signature(identity, obfuscated)
    return f"{url}&{parameter}={signature}"


def try_decrypt_url(manager: JavaScriptPlayerManager, url: str, identity: str) -> str:
    """Decrypt the throttling parameter of ``url``, or return ``url`` on failure."""

    try:
        return manager.decrypt_throttling_parameter(url, identity)
    except DeobfuscationError as exc:
        LOG.warning("using throttled url for %s: %s", identity, exc)
        return url


def append_query_token(url: str, name: str, token: Optional[str]) -> str:
    if not token:
        return url
    separator = "&" if ("?" in url or "&" in url) else "?"
    return f"{url}{separator}{name}={token}"


# --- Proof-of-origin tokens --------------------------------------------------
@dataclass(frozen=True)
class PoTokenResult:
    """Tokens minted by a :class:`PoTokenProvider` for one video request."""

    visitor_data: str
    player_request_po_token: str
    streaming_data_po_token: Optional[str] = None


@runtime_checkable
class PoTokenProvider(Protocol):
    """Supplies optional proof-of-origin tokens per client variant.

    Each method returns ``None`` when the provider has no token for that
    client.  Tokens are opaque and never validated here.
    """

    def get_web_client_po_token(self, video_id: str) -> Optional[PoTokenResult]: ...

    def get_android_client_po_token(self, video_id: str) -> Optional[PoTokenResult]: ...

    def get_ios_client_po_token(self, video_id: str) -> Optional[PoTokenResult]: ...


PO_TOKEN_CLIENTS = ("web", "android", "ios")


def fetch_po_token(provider: PoTokenProvider, client: str, video_id: str) -> Optional[PoTokenResult]:
    """Ask ``provider`` for the token of ``client`` (one of :data:`PO_TOKEN_CLIENTS`)."""

    if client not in PO_TOKEN_CLIENTS:
        raise ValueError(f"unknown po token client {client!r}, expected one of {PO_TOKEN_CLIENTS}")
    result = getattr(provider, f"get_{client}_client_po_token")(video_id)
    if result is None:
        LOG.debug("no %s po token for %s", client, video_id)
    return result


def stream_url(
    manager: JavaScriptPlayerManager,
    identity: str,
    *,
    url: Optional[str] = None,
    cipher: Union[str, Mapping[str, str], None] = None,
    po_token: Optional[PoTokenResult] = None,
    po_token_provider: Optional[PoTokenProvider] = None,
    client: str = "web",
) -> str:
    """Build the final URL of a stream from either a plain ``url`` or a ``cipher``.

    Signature failures propagate since the stream is unusable without a
    signature.  Throttling failures fall back to the throttled URL.

    An explicit ``po_token`` wins; otherwise ``po_token_provider`` is asked for
    the token of ``client`` with ``identity`` as the video id.
    """

    if po_token is None and po_token_provider is not None:
        po_token = fetch_po_token(po_token_provider, client, identity)

    if cipher is not None:
        resolved = build_signed_url(manager, identity, cipher)
    elif url:
        resolved = url
    else:
        raise ExtractionError(f"stream for {identity!r} has neither url nor cipher")

    resolved = try_decrypt_url(manager, resolved, identity)
    if po_token is not None:
        resolved = append_query_token(resolved, PO_TOKEN_PARAMETER, po_token.streaming_data_po_token)
    return resolved


__all__ = [
    "DEFAULT_SIGNATURE_PARAMETER",
    "PO_TOKEN_CLIENTS",
    "PO_TOKEN_PARAMETER",
    "PoTokenProvider",
    "PoTokenResult",
    "append_query_token",
    "build_signed_url",
    "fetch_po_token",
    "parse_signature_cipher",
    "stream_url",
    "try_decrypt_url",
]
