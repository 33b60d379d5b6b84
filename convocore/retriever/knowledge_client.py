"""
Knowledge Backend Client

HTTP adapter for the external knowledge/record-management service. Every
operation is an independent ``POST`` of a JSON body (always carrying
``user_id``) to an endpoint relative to the configured base URL.

``get_enhanced_response`` raises ``KnowledgeBackendError`` so the caller can
fall through to another response source; all other operations log the
failure and return a degraded value.
"""

import asyncio
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Set
import logging

import aiohttp

logger = logging.getLogger(__name__)


class KnowledgeBackendError(Exception):
    """Failure of a knowledge service request."""

    def __init__(self, message: str, endpoint: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.endpoint = endpoint
        self.status = status


class KnowledgeBackendDisabledError(KnowledgeBackendError):
    """Raised when the knowledge feature flag is off."""

    def __init__(self, endpoint: Optional[str] = None):
        super().__init__("Knowledge augmentation is disabled", endpoint=endpoint)


@dataclass
class Location:
    """A physical location record."""
    name: str
    id: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    street1: Optional[str] = None
    zipcode: Optional[str] = None
    is_default: bool = False


@dataclass
class Space:
    """A space inside a location."""
    name: str
    id: Optional[str] = None
    location_id: Optional[str] = None
    icon: Optional[str] = None
    is_default: bool = False
    is_active: bool = True


@dataclass
class Asset:
    """An item stored in a space."""
    name: str
    id: Optional[str] = None
    space_id: Optional[str] = None
    location_id: Optional[str] = None
    description: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UserInfo:
    """Records owned by the configured user."""
    assets: List[Dict[str, Any]] = field(default_factory=list)
    spaces: List[Dict[str, Any]] = field(default_factory=list)
    locations: List[Dict[str, Any]] = field(default_factory=list)


def _record_fields(record: Any) -> Dict[str, Any]:
    """Drop unset fields from a record before sending it."""
    if isinstance(record, dict):
        data = dict(record)
    else:
        data = asdict(record)
    return {k: v for k, v in data.items() if v is not None}


def _list_field(data: Dict[str, Any], key: str, endpoint: str) -> List[Any]:
    """``data[key]`` if it is a list; anything else counts as a malformed reply."""
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        logger.warning(f"{endpoint} returned malformed '{key}': expected a list, got {type(value).__name__}")
        return []
    return value


class KnowledgeBackend:
    """Client for the knowledge service."""

    def __init__(self, base_url: str = "http://localhost:8000", user_id: str = "default-user",
                 timeout: float = 5.0, enabled: bool = True):
        self.base_url = base_url.rstrip('/')
        self.user_id = user_id
        self.timeout = timeout
        self.enabled = enabled
        self._pending: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, knowledge_settings: Any) -> 'KnowledgeBackend':
        return cls(
            base_url=knowledge_settings.base_url,
            user_id=knowledge_settings.user_id,
            timeout=knowledge_settings.timeout,
            enabled=knowledge_settings.enabled,
        )

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST ``payload`` and return the decoded JSON object."""
        if not self.enabled:
            raise KnowledgeBackendDisabledError(endpoint)

        body = dict(payload)
        body['user_id'] = self.user_id
        url = f"{self.base_url}{endpoint}"

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=body) as response:
                    if response.status >= 400:
                        error_text = await response.text()
                        raise KnowledgeBackendError(
                            f"{endpoint} failed with {response.status}: {error_text[:200]}",
                            endpoint=endpoint, status=response.status
                        )
                    data = await response.json(content_type=None)

        except asyncio.TimeoutError:
            raise KnowledgeBackendError(f"{endpoint} timed out after {self.timeout}s", endpoint=endpoint)

        except aiohttp.ClientError as e:
            raise KnowledgeBackendError(f"{endpoint} request failed: {e}", endpoint=endpoint)

        except ValueError as e:
            raise KnowledgeBackendError(f"{endpoint} returned invalid JSON: {e}", endpoint=endpoint)

        if not isinstance(data, dict):
            raise KnowledgeBackendError(f"{endpoint} returned unexpected payload", endpoint=endpoint)
        return data

    async def get_enhanced_response(self, message: str, session_id: str, use_augmentation: bool = True) -> str:
        """Knowledge-augmented reply. Raises ``KnowledgeBackendError`` on any failure."""
        data = await self._post('/enhanced-response', {
            'message': message,
            'session_id': session_id,
            'use_rag': use_augmentation,
        })
        reply = data.get('response')
        if not isinstance(reply, str) or not reply.strip():
            raise KnowledgeBackendError("Missing 'response' field", endpoint='/enhanced-response')
        return reply

    async def search(self, query: str, k: int = 5) -> List[str]:
        """Top ``k`` text snippets for ``query``; empty on failure."""
        try:
            data = await self._post('/search', {'query': query, 'k': k})
        except KnowledgeBackendError as e:
            logger.warning(f"Knowledge search failed: {e}")
            return []

        results = _list_field(data, 'results', '/search')
        return [r for r in results if isinstance(r, str)][:k]

    async def _status_call(self, endpoint: str, payload: Dict[str, Any], result_key: str,
                           success: str, failure: str) -> str:
        try:
            data = await self._post(endpoint, payload)
        except KnowledgeBackendError as e:
            logger.warning(f"Knowledge request {endpoint} failed: {e}")
            return failure
        value = data.get(result_key)
        if isinstance(value, str) and value.strip():
            return value
        return success

    async def create_location(self, location: Location) -> str:
        payload = _record_fields(location)
        payload.pop('id', None)
        return await self._status_call('/create-location', payload, 'message',
                                       "Location created successfully.", "Failed to create location.")

    async def create_space(self, space_name: str) -> str:
        return await self._status_call('/create-space', {'space_name': space_name}, 'message',
                                       "Space created successfully.", "Failed to create space.")

    async def edit_location(self, location_id: str, updates: Dict[str, Any]) -> str:
        payload = {'location_id': location_id, **_record_fields(updates)}
        return await self._status_call('/edit-location', payload, 'message',
                                       "Location updated successfully.", "Failed to update location.")

    async def edit_space(self, space_id: str, updates: Dict[str, Any]) -> str:
        payload = {'space_id': space_id, **_record_fields(updates)}
        return await self._status_call('/edit-space', payload, 'message',
                                       "Space updated successfully.", "Failed to update space.")

    async def edit_asset(self, asset_id: str, updates: Dict[str, Any]) -> str:
        payload = {'asset_id': asset_id, **_record_fields(updates)}
        return await self._status_call('/edit-asset', payload, 'message',
                                       "Asset updated successfully.", "Failed to update asset.")

    async def get_asset_warranty(self, asset_id: str, asset_name: str) -> str:
        failure = "Unable to retrieve warranty information."
        return await self._status_call('/warranty', {'asset_id': asset_id, 'asset_name': asset_name},
                                       'warranty_info', failure, failure)

    async def estimate_asset_value(self, asset_id: str, asset_name: str) -> str:
        failure = "Unable to estimate asset value."
        return await self._status_call('/estimate-value', {'asset_id': asset_id, 'asset_name': asset_name},
                                       'estimated_value', failure, failure)

    async def get_user_info(self) -> UserInfo:
        try:
            data = await self._post('/user-info', {})
        except KnowledgeBackendError as e:
            logger.warning(f"Could not fetch user info: {e}")
            return UserInfo()
        return UserInfo(
            assets=_list_field(data, 'assets', '/user-info'),
            spaces=_list_field(data, 'spaces', '/user-info'),
            locations=_list_field(data, 'locations', '/user-info'),
        )

    async def get_chat_history(self, session_id: str) -> List[Dict[str, Any]]:
        try:
            data = await self._post('/chat-history', {'session_id': session_id})
        except KnowledgeBackendError as e:
            logger.warning(f"Could not fetch chat history for {session_id}: {e}")
            return []
        return _list_field(data, 'messages', '/chat-history')

    async def store_conversation(self, user_message: str, ai_response: str, session_id: str) -> bool:
        """Persist one exchange. Failures are logged, never raised."""
        try:
            await self._post('/store-conversation', {
                'user_message': user_message,
                'ai_response': ai_response,
                'session_id': session_id,
            })
            return True
        except KnowledgeBackendError as e:
            logger.error(f"Failed to store conversation for session {session_id}: {e}")
            return False

    def schedule_store_conversation(self, user_message: str, ai_response: str,
                                    session_id: str) -> Optional[asyncio.Task]:
        """Fire-and-forget ``store_conversation`` on the running loop."""
        if not self.enabled:
            return None
        task = asyncio.ensure_future(self.store_conversation(user_message, ai_response, session_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for outstanding background stores."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
