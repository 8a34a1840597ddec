# app/storage/__init__.py
from .service import LocalObjectStorage, StorageError, SignedUrlExpired, SignedUrlInvalid, get_storage
