"""Тонкие обёртки над CDP, доступные как атрибуты окна."""

from cdpwindow.api.cdp import CDPAccess
from cdpwindow.api.controls import ControlsApi
from cdpwindow.api.idle import IdleApi
from cdpwindow.api.page import PageApi
from cdpwindow.api.resources import ResourcesApi
from cdpwindow.api.script_cache import ScriptCacheApi

__all__ = [
	'CDPAccess',
	'ControlsApi',
	'IdleApi',
	'PageApi',
	'ResourcesApi',
	'ScriptCacheApi',
]
