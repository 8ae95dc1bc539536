"""Vault module: credential session, vault status and unlock flow."""

from .crypto import encrypt_for_transmission, generate_session_id
from .models import Session, VaultProvider, VaultState, VaultStatus
from .persistence import FileSessionStore, MemorySessionStore, SessionStore
from .session import CredentialSession, CredentialState
from .status import Debouncer, VaultStatusCoordinator
from .unlock import CapturedPassword, PromptRequest, UnlockFlow, UnlockOutcome

__all__ = [
    'encrypt_for_transmission',
    'generate_session_id',
    'Session',
    'VaultProvider',
    'VaultState',
    'VaultStatus',
    'FileSessionStore',
    'MemorySessionStore',
    'SessionStore',
    'CredentialSession',
    'CredentialState',
    'Debouncer',
    'VaultStatusCoordinator',
    'CapturedPassword',
    'PromptRequest',
    'UnlockFlow',
    'UnlockOutcome',
]
