"""
Streaming asset downloader.

The body is written to `<destination>.part` in chunks and renamed into
place only after the last chunk, so `destination` exists only for a
complete download and nothing partial is left behind on failure.

File work (open, each chunk write, close, rename) runs in the default
executor so a slow disk never stalls the event loop.
"""

import asyncio
import logging
import os
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)


DEFAULT_CHUNK_SIZE = 1024 * 1024


class Downloader:
    """Downloads one URL to one file, never buffering the whole body."""
    
    def __init__(self, client: httpx.AsyncClient, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._client = client
        self.chunk_size = chunk_size
    
    async def download(self, url: str, destination: Path) -> bool:
        """
        Stream url into destination.
        
        Args:
            url: Asset URL
            destination: Final file path; its directory must exist
            
        Returns:
            True if the file was written completely, False otherwise
        """
        loop = asyncio.get_running_loop()
        destination = Path(destination)
        partial = destination.with_name(destination.name + ".part")
        
        try:
            async with self._client.stream("GET", url) as response:
                response.raise_for_status()
                written = await self._write_body(response, partial)
            await loop.run_in_executor(None, os.replace, partial, destination)
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            logger.warning(f"[Download] Failed {url} -> {destination.name}: {e}")
            await loop.run_in_executor(None, _discard, partial)
            return False
        except BaseException:
            _discard(partial)
            raise
        
        logger.info(f"[Download] {destination.name}: {written / 1024 / 1024:.1f}MB")
        return True
    
    async def _write_body(self, response: httpx.Response, partial: Path) -> int:
        loop = asyncio.get_running_loop()
        written = 0
        
        f = await loop.run_in_executor(None, open, partial, "wb")
        try:
            async for chunk in response.aiter_bytes(self.chunk_size):
                if chunk:
                    await loop.run_in_executor(None, f.write, chunk)
                    written += len(chunk)
        finally:
            await loop.run_in_executor(None, f.close)
        
        return written


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"[Download] Could not remove partial file {path}: {e}")
