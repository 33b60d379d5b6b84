"""
Knowledge Retriever Module

Client for the external knowledge service: snippet search, augmented
replies, conversation storage and location/space/asset records.
"""

from .knowledge_client import (
    KnowledgeBackend,
    KnowledgeBackendError,
    KnowledgeBackendDisabledError,
    Location,
    Space,
    Asset,
    UserInfo,
)

__all__ = [
    'KnowledgeBackend',
    'KnowledgeBackendError',
    'KnowledgeBackendDisabledError',
    'Location',
    'Space',
    'Asset',
    'UserInfo',
]
