"""
User access-token lookup for the clip registry.
"""

import asyncio
from functools import partial
from typing import Optional

from .manager import PersistenceManager


class UserCredentialStore:
    """Async access to the users table."""
    
    def __init__(self, manager: PersistenceManager):
        self._manager = manager
    
    async def get_access_token(self, user_id: str) -> Optional[str]:
        """Return the user's token, or None if the user is unknown."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, partial(self._manager.load_user_token, user_id)
        )
    
    async def save_access_token(self, user_id: str, access_token: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, partial(self._manager.save_user_token, user_id, access_token)
        )
