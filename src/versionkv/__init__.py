"""VersionKV: versioned key-value store over a transactional SQLite backend."""

__version__ = "0.1.0"

from versionkv.config import StoreConfig, load_config
from versionkv.errors import (
    AlreadyRegisteredError,
    DecodeFailedError,
    EmptyKeyError,
    ErrorKind,
    FetchFailedError,
    GatewayTimeoutError,
    InitialPopulationFailedError,
    InvalidInitError,
    InvalidPayloadError,
    MetadataWriteFailedError,
    MissingKeyError,
    NoVersionError,
    PayloadWriteFailedError,
    RegistrationWriteFailedError,
    StorageBackendError,
    VersionKVError,
)
from versionkv.ids import IdGenerator, new_id
from versionkv.records import UNSET_VERSION, JobLink, MetadataRecord
from versionkv.registry import MetadataRegistry
from versionkv.shape import ShapeInfo, describe_shape
from versionkv.storage import GatewayProtocol, SqliteGateway, open_gateway
from versionkv.store import VersionedStore, VersionIdSequence

__all__ = [
    "__version__",
    "VersionedStore",
    "VersionIdSequence",
    "MetadataRegistry",
    "MetadataRecord",
    "JobLink",
    "UNSET_VERSION",
    "GatewayProtocol",
    "SqliteGateway",
    "open_gateway",
    "IdGenerator",
    "new_id",
    "ShapeInfo",
    "describe_shape",
    "StoreConfig",
    "load_config",
    "ErrorKind",
    "VersionKVError",
    "EmptyKeyError",
    "InvalidInitError",
    "InvalidPayloadError",
    "MissingKeyError",
    "NoVersionError",
    "AlreadyRegisteredError",
    "RegistrationWriteFailedError",
    "InitialPopulationFailedError",
    "MetadataWriteFailedError",
    "PayloadWriteFailedError",
    "FetchFailedError",
    "DecodeFailedError",
    "GatewayTimeoutError",
    "StorageBackendError",
]
