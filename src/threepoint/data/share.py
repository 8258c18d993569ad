"""
Share links - the project state packed into a URL parameter.

Tokens use the browser estimator's encoding so links work in both directions:
the browser state as JSON, zlib-deflated, standard base64, then URL-quoted.
"""
import base64
import binascii
import json
import zlib
from typing import Optional, Tuple
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from threepoint.logs import get_logger
from threepoint.models import ProjectState
from threepoint.recovery import ShareLinkError, CorruptionError
from .browser import to_browser_state, from_browser_state

log = get_logger("data.share")

STATE_PARAM = "sharedState"
LANG_PARAM = "lang"
DOWNLOAD_PARAM = "download"
DOWNLOAD_TYPES = ("pdf", "excel")


def encode_state(state: ProjectState) -> str:
    """Encode a state as a URL-safe share token."""
    payload = json.dumps(to_browser_state(state), separators=(",", ":"), ensure_ascii=False)
    compressed = zlib.compress(payload.encode("utf-8"), level=9)
    token = quote(base64.b64encode(compressed).decode("ascii"), safe="")
    log.debug(f"Encoded state: {len(payload)} bytes of JSON -> {len(token)} character token")
    return token


def _split_link(token_or_url: str) -> Tuple[str, Optional[str]]:
    """Return the raw token and the ``lang`` parameter of a link; a bare token has no language."""
    text = token_or_url.strip()
    if "://" not in text and not text.startswith("?"):
        return text, None

    query = urlsplit(text).query if "://" in text else text[1:]
    params = {}
    for pair in query.split("&"):
        key, _, value = pair.partition("=")
        params.setdefault(key, value)
    if STATE_PARAM not in params:
        raise ShareLinkError(f"Link has no '{STATE_PARAM}' parameter")
    return params[STATE_PARAM], unquote(params[LANG_PARAM]) if params.get(LANG_PARAM) else None


def decode_state(token_or_url: str) -> ProjectState:
    """
    Decode a share token, or a full link carrying one in its query string.

    A ``lang`` parameter on the link overrides the language stored in the
    state, as the browser tool does when it opens the link.

    Raises:
        ShareLinkError: The token is not valid base64/zlib/JSON or not a project state.
    """
    raw_token, language = _split_link(token_or_url)
    token = unquote(raw_token)
    try:
        compressed = base64.b64decode(token, validate=True)
        payload = zlib.decompress(compressed).decode("utf-8")
        document = json.loads(payload)
    except (binascii.Error, ValueError, zlib.error) as e:
        log.warning(f"Failed to decode share token: {e}")
        raise ShareLinkError(f"Invalid share token: {e}") from e

    try:
        state = from_browser_state(document)
    except CorruptionError as e:
        raise ShareLinkError(f"Share token does not hold a project: {e}") from e

    if language and language != state.config.language:
        state = state.model_copy(update={'config': state.config.model_copy(update={'language': language})})
    return state


def share_url(state: ProjectState, base_url: str, download: Optional[str] = None) -> str:
    """
    Build a link the browser tool opens with this state loaded.

    The link is ``<base>?sharedState=<token>&lang=<language>``; any query or
    fragment already on base_url is dropped. ``download`` ("pdf" or "excel")
    asks the browser to export the shared state straight away.
    """
    if download is not None and download not in DOWNLOAD_TYPES:
        raise ValueError(f"Unknown download type '{download}'; expected one of {', '.join(DOWNLOAD_TYPES)}")
    parts = urlsplit(base_url.strip())
    base = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    link = f"{base}?{STATE_PARAM}={encode_state(state)}&{LANG_PARAM}={quote(state.config.language, safe='')}"
    if download:
        link += f"&{DOWNLOAD_PARAM}={download}"
    return link
