from .client import PortID
from .crypto import DecryptFailure, decrypt_payload, encrypt_payload, generate_recovery_key, hash_password
from .directory import DirectoryClient
from .local_service import LocalDirectoryService, LocalStorageService
from .scheduler import ThreadScheduler
from .storage import StorageClient

__all__ = [
    "PortID",
    "DecryptFailure",
    "decrypt_payload",
    "encrypt_payload",
    "generate_recovery_key",
    "hash_password",
    "DirectoryClient",
    "StorageClient",
    "LocalDirectoryService",
    "LocalStorageService",
    "ThreadScheduler",
]
