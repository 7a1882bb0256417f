"""Окна браузера под управлением CDP с двусторонним мостом IPC"""

import os
from typing import TYPE_CHECKING

from cdpwindow.logging_config import setup_logging

# Setup logging
if os.environ.get('CDPWINDOW_SETUP_LOGGING', 'true').lower() != 'false':
	from cdpwindow.config import CONFIG

	debug_log_file = getattr(CONFIG, 'DEBUG_LOG_FILE', None)
	info_log_file = getattr(CONFIG, 'INFO_LOG_FILE', None)
	logger = setup_logging(debug_log_file=debug_log_file, info_log_file=info_log_file)
else:
	import logging

	logger = logging.getLogger('cdpwindow')

# Типы для lazy imports
if TYPE_CHECKING:
	from cdpwindow.exceptions import (
		CdpWindowError,
		InvalidArgumentError,
		RemoteEvaluationError,
		ReservedKeyError,
		WindowClosedError,
	)
	from cdpwindow.ipc.bridge import IPCBridge
	from cdpwindow.ipc.store import MirroredStore
	from cdpwindow.session.launcher import WindowProfile, open_window
	from cdpwindow.session.navigation import NavigationPolicy
	from cdpwindow.session.window import BrowserWindow, WindowVersions

# Lazy imports mapping
_LAZY_IMPORTS = {
	'BrowserWindow': ('cdpwindow.session.window', 'BrowserWindow'),
	'WindowVersions': ('cdpwindow.session.window', 'WindowVersions'),
	'WindowProfile': ('cdpwindow.session.launcher', 'WindowProfile'),
	'open_window': ('cdpwindow.session.launcher', 'open_window'),
	'NavigationPolicy': ('cdpwindow.session.navigation', 'NavigationPolicy'),
	'IPCBridge': ('cdpwindow.ipc.bridge', 'IPCBridge'),
	'MirroredStore': ('cdpwindow.ipc.store', 'MirroredStore'),
	'CdpWindowError': ('cdpwindow.exceptions', 'CdpWindowError'),
	'InvalidArgumentError': ('cdpwindow.exceptions', 'InvalidArgumentError'),
	'RemoteEvaluationError': ('cdpwindow.exceptions', 'RemoteEvaluationError'),
	'ReservedKeyError': ('cdpwindow.exceptions', 'ReservedKeyError'),
	'WindowClosedError': ('cdpwindow.exceptions', 'WindowClosedError'),
}


def __getattr__(name: str):
	"""Lazy import mechanism."""
	if name in _LAZY_IMPORTS:
		module_path, attr_name = _LAZY_IMPORTS[name]
		try:
			from importlib import import_module

			module = import_module(module_path)
			attr = getattr(module, attr_name)
			globals()[name] = attr
			return attr
		except ImportError as e:
			raise ImportError(f'Failed to import {name} from {module_path}: {e}') from e
	raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
	'BrowserWindow',
	'CdpWindowError',
	'IPCBridge',
	'InvalidArgumentError',
	'MirroredStore',
	'NavigationPolicy',
	'RemoteEvaluationError',
	'ReservedKeyError',
	'WindowClosedError',
	'WindowProfile',
	'WindowVersions',
	'open_window',
]
