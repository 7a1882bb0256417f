"""Мост IPC между Python и страницей."""

from cdpwindow.ipc.bridge import IPCBridge
from cdpwindow.ipc.models import Envelope
from cdpwindow.ipc.store import RESERVED_KEYS, MirroredStore

__all__ = [
	'Envelope',
	'IPCBridge',
	'MirroredStore',
	'RESERVED_KEYS',
]
