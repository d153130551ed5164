"""
Application services layer.

Services orchestrate queue operations using the accessor, repositories and
domain services.
"""

# Result type for consistent error handling
from services.result import Result

# Collaborator interfaces (ABCs)
from services.interfaces import (
    IEntryResolver,
    IIdentityLookup,
    IPresenceProvider,
    PresenceScope,
)

from services.queue_accessor import QueueAccess, QueueAccessor, ReentrantAccessError
from services.queue_bindings import QueueBinding, QueueBindingDescription, QueueBindingRegistry

__all__ = [
    "QueueAccess",
    "QueueAccessor",
    "ReentrantAccessError",
    "QueueBinding",
    "QueueBindingDescription",
    "QueueBindingRegistry",
    # Result type
    "Result",
    # Interfaces
    "IEntryResolver",
    "IIdentityLookup",
    "IPresenceProvider",
    "PresenceScope",
]
