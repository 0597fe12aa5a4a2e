"""
Services Module

Remote backend client, session context and the offline-first persistence
gateway.
"""
from .session import SessionContext, SessionUser, UserRole
from .remote import RemoteClient
from .gateway import DiagnosisRequest, PersistenceGateway, create_gateway

__all__ = [
    "SessionContext",
    "SessionUser",
    "UserRole",
    "RemoteClient",
    "DiagnosisRequest",
    "PersistenceGateway",
    "create_gateway",
]
