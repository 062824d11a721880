"""Public schema exports."""

from .auth import CompleteConnectionPayload, DisconnectPayload

__all__ = ["CompleteConnectionPayload", "DisconnectPayload"]
