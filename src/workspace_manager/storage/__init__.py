"""Storage abstractions for the workspace manager."""

from .journal import JournalEvent, JournalUnavailableError, WorkspaceJournal
from .models import Binding, RepositoryRecord, WorkspaceDescriptor
from .registry import RegistryStore
from .workspaces import WorkspaceStore

__all__ = [
    "Binding",
    "JournalEvent",
    "JournalUnavailableError",
    "RegistryStore",
    "RepositoryRecord",
    "WorkspaceDescriptor",
    "WorkspaceJournal",
    "WorkspaceStore",
]
