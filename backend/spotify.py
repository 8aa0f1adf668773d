"""Thin client for the Spotify Web API: client-credentials token and catalog reads."""

import base64
import logging
import re
from typing import List

import requests

from errors import CatalogError, TokenAcquisitionError
from quiz_engine import Track

logger = logging.getLogger(__name__)

TOKEN_URL = "https://accounts.spotify.com/api/token"
API_BASE = "https://api.spotify.com"
DEFAULT_TIMEOUT = 10

PLAYLIST_URL_RE = re.compile(r"playlist/([a-zA-Z0-9]+)(\?.*)?$")
PLAYLIST_URI_RE = re.compile(r"^spotify:playlist:([a-zA-Z0-9]+)$")


def acquire_token(client_id, client_secret, token_url=TOKEN_URL, timeout=DEFAULT_TIMEOUT) -> str:
    """Exchange the client id/secret pair for a bearer token."""
    if not client_id or not client_secret:
        logger.error("Spotify client credentials are not configured")
        raise TokenAcquisitionError()

    auth = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
    try:
        r = requests.post(
            token_url,
            data={"grant_type": "client_credentials"},
            headers={
                "Authorization": f"Basic {auth}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
            timeout=timeout,
        )
        r.raise_for_status()
        token = r.json().get("access_token")
    except (requests.RequestException, ValueError) as e:
        logger.error("Error fetching Spotify token: %s", e)
        raise TokenAcquisitionError() from e

    if not token:
        logger.error("Spotify token response had no access_token")
        raise TokenAcquisitionError()
    return token


def fetch_resource(token, path, api_base=API_BASE, timeout=DEFAULT_TIMEOUT):
    """GET <api_base>/v1/<path> and return the decoded JSON body as is."""
    url = f"{api_base.rstrip('/')}/v1/{path.lstrip('/')}"
    try:
        r = requests.get(url, headers={"Authorization": f"Bearer {token}"}, timeout=timeout)
    except requests.RequestException as e:
        logger.warning("Catalog request to %s failed: %s", url, e)
        raise CatalogError() from e

    if not r.ok:
        logger.warning("Catalog request to %s returned %s", url, r.status_code)
        raise CatalogError(upstream_status=r.status_code)
    try:
        return r.json()
    except ValueError as e:
        raise CatalogError("Catalog returned an unreadable response") from e


def parse_tracks(payload) -> List[Track]:
    # items[].track is null for tracks removed from the catalog
    items = payload.get("items") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        raise CatalogError("Catalog response has no track items")

    tracks = []
    for item in items:
        track = (item or {}).get("track")
        if not track or not track.get("name"):
            continue
        tracks.append(Track(name=track["name"], preview_url=track.get("preview_url") or None))
    return tracks


def fetch_playlist_tracks(token, playlist_id, api_base=API_BASE, timeout=DEFAULT_TIMEOUT) -> List[Track]:
    payload = fetch_resource(token, f"playlists/{playlist_id}/tracks", api_base=api_base, timeout=timeout)
    return parse_tracks(payload)


def extract_playlist_id(raw: str) -> str:
    """
    Pull the playlist id out of a share URL such as
    https://open.spotify.com/playlist/<id>?si=..., or a spotify:playlist:<id> URI.
    Anything else is taken as the id itself.
    """
    value = (raw or "").strip()
    match = PLAYLIST_URL_RE.search(value) or PLAYLIST_URI_RE.match(value)
    if match:
        return match.group(1)
    return value
