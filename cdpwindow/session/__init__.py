from typing import TYPE_CHECKING

# Заглушки типов для ленивых импортов
if TYPE_CHECKING:
	from .controller import Session, SessionController
	from .launcher import WindowProfile, open_window
	from .navigation import NavigationPolicy
	from .window import BrowserWindow, WindowVersions


# Словарь для ленивой загрузки компонентов окна
_LAZY_IMPORTS = {
	'BrowserWindow': ('.window', 'BrowserWindow'),
	'WindowVersions': ('.window', 'WindowVersions'),
	'WindowProfile': ('.launcher', 'WindowProfile'),
	'open_window': ('.launcher', 'open_window'),
	'NavigationPolicy': ('.navigation', 'NavigationPolicy'),
	'Session': ('.controller', 'Session'),
	'SessionController': ('.controller', 'SessionController'),
}


def __getattr__(name: str):
	"""Ленивая загрузка компонентов окна."""
	if name not in _LAZY_IMPORTS:
		raise AttributeError(f"module '{__name__}' has no attribute '{name}'")

	module_path, attr_name = _LAZY_IMPORTS[name]
	full_module_path = f'cdpwindow.session{module_path}'
	try:
		from importlib import import_module

		module = import_module(full_module_path)
		attr = getattr(module, attr_name)
		globals()[name] = attr
		return attr
	except ImportError as e:
		raise ImportError(f'Failed to import {name} from {full_module_path}: {e}') from e


__all__ = [
	'BrowserWindow',
	'NavigationPolicy',
	'Session',
	'SessionController',
	'WindowProfile',
	'WindowVersions',
	'open_window',
]
