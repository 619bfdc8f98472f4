__version__ = "1.0.0"


from .introspector import (  # noqa: F401
    Introspector,
    LocalSystemError,
    RuntimeContext,
    Snapshot,
)
from .introspector_params import (  # noqa: F401
    DEFAULT_LOG_LEVEL,
    IntrospectorParams,
    make_arg_parser,
)
from .metadata_fetcher import (  # noqa: F401
    DecodeError,
    HttpStatusError,
    MetadataFetcher,
    MetadataFetchError,
    TransportError,
)
from .response_encoder import GzipWriterPool, ResponseEncoder  # noqa: F401
from .runtime_metadata import (  # noqa: F401
    DiscoveryMode,
    probe_discovery_mode,
    resolve_container_id,
)
