from .api import ApiClient, ApiError
from .commands import (
    AddCollaboratorCommand,
    AddRecipientCommand,
    OptimisticCommand,
    RemoveCollaboratorCommand,
    RemoveRecipientCommand,
)

__all__ = [
    "ApiClient",
    "ApiError",
    "OptimisticCommand",
    "AddRecipientCommand",
    "RemoveRecipientCommand",
    "AddCollaboratorCommand",
    "RemoveCollaboratorCommand",
]
