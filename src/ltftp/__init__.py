"""Lockstep TFTP (RFC 1350) server.

Layout:
- packet framing lives apart from the transfer state machines
- every transfer owns its own peer-connected socket and thread
- timers and limits come from an explicit ServerConfig, never module state
"""

__all__ = ["ServerConfig", "TftpServer"]

from .config import ServerConfig
from .server import TftpServer
