"""
oci-blobs: blob transfers against OCI Distribution registries.

Upload (single-shot or chunked), download, probe and mount content-addressed
blobs with an explicit, per-client configuration.
"""
__version__ = "0.1.0"

from .client import BlobClient, BlobStream
from .errors import (
    BlobError,
    BlobNotFound,
    MissingHeaderError,
    ProtocolError,
    RegistryAuthError,
    RegistryStatusError,
    SessionOpenError,
    SourceExhaustedError,
    TransportError,
)
from .models import ByteRange, Descriptor, Digest, UploadSession, plan_chunks
from .settings import Settings, create_settings_from_env
from .upload import bytes_source, file_source

__all__ = [
    "__version__",
    "BlobClient",
    "BlobStream",
    "BlobError",
    "BlobNotFound",
    "MissingHeaderError",
    "ProtocolError",
    "RegistryAuthError",
    "RegistryStatusError",
    "SessionOpenError",
    "SourceExhaustedError",
    "TransportError",
    "ByteRange",
    "Descriptor",
    "Digest",
    "UploadSession",
    "plan_chunks",
    "Settings",
    "create_settings_from_env",
    "bytes_source",
    "file_source",
]
