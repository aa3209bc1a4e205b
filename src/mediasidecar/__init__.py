"""mediasidecar core package.

Caches the output of ffprobe, mkvmerge and mediainfo in a versioned sidecar
file next to each media file and decides whether that cache is still valid:

- **compression**: reversible gzip codec for the stored tool output
- **parsers**: normalize each tool's raw output into ``MediaInfo``
- **tools**: tool registry protocol and subprocess implementation
- **probe**: all-or-nothing aggregation of the three tools
- **sidecar**: the serializable ``SidecarRecord``
- **validator**: schema, fingerprint and tool-version checks
- **store**: read / validate / recreate / write lifecycle

The main entry point is ``SidecarStore``.
"""

from .config import AppConfig, SidecarSettings, ToolSettings, load_config
from .errors import ErrorKind, SidecarError
from .models import MediaFingerprint, MediaInfo, MediaInfoSet, ToolType, TrackInfo
from .sidecar import SCHEMA_VERSION, SIDECAR_EXTENSION, SidecarRecord
from .store import LoadResult, LoadStatus, SidecarStore
from .tools import StaticToolRegistry, SubprocessToolRegistry, ToolRegistry
from .version import __version__

__all__ = [
    "__version__",
    "AppConfig",
    "ErrorKind",
    "LoadResult",
    "LoadStatus",
    "MediaFingerprint",
    "MediaInfo",
    "MediaInfoSet",
    "SCHEMA_VERSION",
    "SIDECAR_EXTENSION",
    "SidecarError",
    "SidecarRecord",
    "SidecarSettings",
    "SidecarStore",
    "StaticToolRegistry",
    "SubprocessToolRegistry",
    "ToolRegistry",
    "ToolSettings",
    "ToolType",
    "TrackInfo",
    "load_config",
]
