"""
Chatlog Enrichment Service

Resolves {username, displayName} for a user id, asynchronously, so RECEIVED
and READ entries can carry identity fields that are not available
synchronously in the store.

Contract:
- resolve(userId) -> dict with any of 'username' / 'displayName'
- Never raises past its boundary: any failure returns {} and is reported
  at ERROR through the diagnostics facade
- Safe to run concurrently for distinct user ids; each call works on its
  own locals, the only shared state is the directory's result cache
- The caller bounds the total wait (EventPipeline wraps resolve() in
  asyncio.wait_for)

Directories:
- StaticUserDirectory: in-memory id -> record table (config / tests)
- HttpUserDirectory: GET {baseUrl}/users/{userId} via aiohttp
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from sdk.logging import getLogger


class EnrichmentError(Exception):
    """User directory lookup error"""
    pass


def _identityFrom(record: Any) -> Dict[str, str]:
    """Pick username / displayName out of a directory record (snake or camel case)."""
    if not isinstance(record, dict):
        return {}
    result = {}
    username = record.get('username')
    displayName = record.get('displayName', record.get('display_name'))
    if username:
        result['username'] = str(username)
    if displayName:
        result['displayName'] = str(displayName)
    return result


class StaticUserDirectory:
    """In-memory user directory"""

    def __init__(self, users: Optional[Dict[str, Dict[str, Any]]] = None):
        self._users = dict(users or {})

    async def lookup(self, userId: str) -> Optional[Dict[str, Any]]:
        return self._users.get(userId)

    def add(self, userId: str, username: Optional[str] = None, displayName: Optional[str] = None):
        self._users[userId] = {'username': username, 'displayName': displayName}

    async def close(self):
        pass


class HttpUserDirectory:
    """
    HTTP user directory client.

    Expects GET {baseUrl}/users/{userId} to answer 200 with a JSON object
    carrying 'username' and 'display_name' (or 'displayName'); 404 means
    unknown user. Successful lookups (including 404) are cached for the
    lifetime of the client.
    """

    def __init__(self, baseUrl: str, timeoutSeconds: float = 2.0):
        self.log = getLogger()
        self.baseUrl = baseUrl.rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeoutSeconds)
        self._session: Optional[aiohttp.ClientSession] = None
        self._cache: Dict[str, Optional[Dict[str, Any]]] = {}

    def _getSession(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def lookup(self, userId: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a user record.

        Raises:
            EnrichmentError: On transport failure or an unexpected status
        """
        if userId in self._cache:
            return self._cache[userId]

        url = f"{self.baseUrl}/users/{userId}"
        try:
            async with self._getSession().get(url) as resp:
                if resp.status == 404:
                    record = None
                elif resp.status == 200:
                    record = await resp.json()
                else:
                    raise EnrichmentError(f"User directory returned HTTP {resp.status} for {userId}")
        except aiohttp.ClientError as e:
            raise EnrichmentError(f"User directory request failed: {e}")
        except asyncio.TimeoutError:
            raise EnrichmentError(f"User directory request timed out: {url}")

        self._cache[userId] = record
        return record

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


class EnrichmentService:
    """Identity resolution with a never-raise boundary"""

    def __init__(self, directory=None, diagnostics=None):
        """
        Args:
            directory: Object with async lookup(userId) -> record | None
                       (None = no directory, every resolve returns {})
            diagnostics: MessageDebugger for ERROR reporting (optional)
        """
        self.log = getLogger()
        self.directory = directory
        self.diagnostics = diagnostics
        self.resolvedCount = 0
        self.failedCount = 0

    async def resolve(self, userId: Optional[str]) -> Dict[str, str]:
        if not userId or self.directory is None:
            return {}

        try:
            record = await self.directory.lookup(userId)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failedCount += 1
            self._reportFailure(userId, e)
            return {}

        self.resolvedCount += 1
        return _identityFrom(record)

    def _reportFailure(self, userId: str, error: BaseException):
        if self.diagnostics is not None:
            self.diagnostics.error("Error getting user info", userId=userId, error=repr(error))
        else:
            self.log.error(f"Error getting user info: {error!r}", userId=userId)

    async def close(self):
        if self.directory is not None and hasattr(self.directory, 'close'):
            await self.directory.close()
