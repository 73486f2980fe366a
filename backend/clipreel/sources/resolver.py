"""
Clip resolver.

Looks a clip up in the remote clip registry and derives its downloadable
MP4 URL. The registry does not return the asset URL directly; it is
derived from the preview thumbnail URL:

    https://clips-media-assets2.twitch.tv/AT-cm%7C123.mp4-preview-480x272.jpg
    → https://clips-media-assets2.twitch.tv/AT-cm%7C123.mp4

A thumbnail that does not end in the preview pattern cannot be resolved.
"""

import logging
import re
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


PREVIEW_SUFFIX_PATTERN = re.compile(r"-preview-\d+x\d+\.jpg$")


def derive_asset_url(thumbnail_url: str) -> Optional[str]:
    """
    Turn a preview thumbnail URL into the clip's MP4 URL.
    
    Returns:
        The asset URL, or None if the thumbnail does not match the pattern
    """
    if not PREVIEW_SUFFIX_PATTERN.search(thumbnail_url):
        return None
    return PREVIEW_SUFFIX_PATTERN.sub(".mp4", thumbnail_url)


def _first_clip(payload: Any) -> Optional[dict]:
    """Return data[0] from a registry response if the shape is right."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if not isinstance(data, list) or not data:
        return None
    clip = data[0]
    return clip if isinstance(clip, dict) else None


class ClipResolver:
    """
    Resolves clip ids to asset URLs through the remote registry.
    
    The HTTP client is owned by the caller and shared with the downloader.
    """
    
    def __init__(self, client: httpx.AsyncClient, api_url: str, client_id: str = ""):
        """
        Args:
            client: Shared async HTTP client
            api_url: Clip metadata endpoint (queried with ?id=<clip_id>)
            client_id: Application client id sent with every request
        """
        self._client = client
        self.api_url = api_url
        self.client_id = client_id
    
    async def resolve(self, clip_id: str, access_token: str) -> Optional[str]:
        """
        Resolve one clip.
        
        Args:
            clip_id: Registry clip identifier
            access_token: The owning user's bearer token
            
        Returns:
            Downloadable asset URL, or None on any failure
        """
        headers = {"Authorization": f"Bearer {access_token}"}
        if self.client_id:
            headers["Client-ID"] = self.client_id
        
        try:
            response = await self._client.get(
                self.api_url, params={"id": clip_id}, headers=headers
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"[Resolver] Lookup failed for clip {clip_id}: {e}")
            return None
        except ValueError as e:
            logger.warning(f"[Resolver] Malformed response for clip {clip_id}: {e}")
            return None
        
        clip = _first_clip(payload)
        if clip is None:
            logger.warning(f"[Resolver] Clip {clip_id} not found in registry")
            return None
        
        thumbnail_url = clip.get("thumbnail_url")
        if not isinstance(thumbnail_url, str):
            logger.warning(f"[Resolver] Clip {clip_id} has no thumbnail URL")
            return None
        
        asset_url = derive_asset_url(thumbnail_url)
        if asset_url is None:
            logger.warning(
                f"[Resolver] Clip {clip_id} thumbnail does not match preview pattern: {thumbnail_url}"
            )
            return None
        
        logger.debug(f"[Resolver] Clip {clip_id} -> {asset_url}")
        return asset_url
