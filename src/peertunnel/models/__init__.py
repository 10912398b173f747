"""Shared enumeration types."""

from peertunnel.models.enums import ConnectionState, FrameKind, LogLevel, TunnelMode

__all__ = ["ConnectionState", "FrameKind", "LogLevel", "TunnelMode"]
