from .paths import ArtifactKind, resolve_library_root_dir
from .runtime import get_runtime_info

__all__ = [
    "ArtifactKind",
    "get_runtime_info",
    "resolve_library_root_dir",
]
