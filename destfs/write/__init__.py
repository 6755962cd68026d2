"""destfs Write Engine.

Writers for each kind of VirtualFile contents:
- ContentWriter: Dispatches a prepared file to the right writer
- MetadataReconciler: Applies mode, times and ownership through a descriptor
- WriteStreamAdapter / pump: Backpressured stream writing
- resolve_link_type: Link type selection for symbolic files
- OptionResolver: Per-file option evaluation
"""

from .buffer import write_buffer
from .contents import ContentWriter
from .directory import write_dir
from .options import OptionResolver, WriteOptions
from .reconciler import MetadataReconciler, ReconcileState
from .stream import WriteStreamAdapter, iter_chunks, pump, write_stream
from .symlink import link_target, resolve_link_type, write_symbolic_link

__all__ = [
    # Dispatch
    "ContentWriter",
    # Options
    "OptionResolver",
    "WriteOptions",
    # Metadata
    "MetadataReconciler",
    "ReconcileState",
    # Writers
    "write_buffer",
    "write_dir",
    "write_stream",
    "write_symbolic_link",
    # Streams
    "WriteStreamAdapter",
    "iter_chunks",
    "pump",
    # Links
    "link_target",
    "resolve_link_type",
]
