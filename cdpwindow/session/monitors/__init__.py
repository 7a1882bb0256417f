"""Watchdogs окна: навигация, внедрение скриптов, процесс браузера."""

from cdpwindow.session.monitors.injection_watchdog import ScriptInjector
from cdpwindow.session.monitors.navigation_watchdog import NavigationWatchdog
from cdpwindow.session.monitors.process_watchdog import ProcessWatchdog
from cdpwindow.session.watchdog_base import BaseWatchdog

__all__ = [
	'BaseWatchdog',
	'NavigationWatchdog',
	'ProcessWatchdog',
	'ScriptInjector',
]
