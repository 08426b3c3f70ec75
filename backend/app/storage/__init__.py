"""Per-user object storage on top of a shared bucket."""

from .backends import InMemoryObjectStore, MinioObjectStore, ObjectStore
from .models import FileObject, FilePage, ObjectInfo
from .namespace import FileNamespace

__all__ = [
    "FileNamespace",
    "FileObject",
    "FilePage",
    "InMemoryObjectStore",
    "MinioObjectStore",
    "ObjectInfo",
    "ObjectStore",
]
