"""Event definitions for window lifecycle and page notifications."""

import os

from bubus import BaseEvent
from pydantic import Field


def _get_timeout(env_var: str, default: float) -> float | None:
	"""
	Safely parse environment variable timeout values.

	Args:
		env_var: Environment variable name (e.g. 'TIMEOUT_FrameNavigatedEvent')
		default: Default timeout value as float (e.g. 15.0)

	Returns:
		Parsed float value or the default if parsing fails
	"""
	timeout_env_value = os.getenv(env_var)
	if timeout_env_value:
		try:
			timeout_float = float(timeout_env_value)
			if timeout_float < 0:
				print(f'Warning: {env_var}={timeout_env_value} is negative, using default {default}')
				return default
			return timeout_float
		except (ValueError, TypeError):
			print(f'Warning: {env_var}={timeout_env_value} is not a valid number, using default {default}')

	return default


# ============================================================================
# CDP -> BrowserWindow (уведомления страницы, переведённые в события шины)
# ============================================================================


class FrameScheduledNavigationEvent(BaseEvent[None]):
	"""Page.frameScheduledNavigation: навигация запланирована, но ещё не началась."""

	url: str
	frame_id: str | None = None
	reason: str | None = None

	event_timeout: float | None = Field(default_factory=lambda: _get_timeout('TIMEOUT_FrameScheduledNavigationEvent', 15.0))  # seconds


class FrameNavigatedEvent(BaseEvent[None]):
	"""Page.frameNavigated: навигация уже произошла (некоторые движки шлют только его)."""

	url: str
	frame_id: str | None = None
	parent_frame_id: str | None = None

	event_timeout: float | None = Field(default_factory=lambda: _get_timeout('TIMEOUT_FrameNavigatedEvent', 15.0))  # seconds


class ExecutionContextCreatedEvent(BaseEvent[None]):
	"""Runtime.executionContextCreated."""

	context_id: int | None = None
	origin: str | None = None

	event_timeout: float | None = Field(default_factory=lambda: _get_timeout('TIMEOUT_ExecutionContextCreatedEvent', 15.0))  # seconds


class PageLoadedEvent(BaseEvent[None]):
	"""Page.loadEventFired."""

	event_timeout: float | None = Field(default_factory=lambda: _get_timeout('TIMEOUT_PageLoadedEvent', 5.0))  # seconds


# ============================================================================
# BrowserWindow -> подписчики
# ============================================================================


class NavigationBlockedEvent(BaseEvent[None]):
	"""Навигация отклонена политикой окна."""

	url: str
	current_url: str
	reverted_to: str | None = Field(default=None, description='URL из истории, на который окно вернули, если навигация уже произошла')

	event_timeout: float | None = Field(default_factory=lambda: _get_timeout('TIMEOUT_NavigationBlockedEvent', 5.0))  # seconds


class BrowserProcessExitedEvent(BaseEvent[None]):
	"""Процесс браузера завершился."""

	pid: int | None = None
	exit_code: int | None = None

	event_timeout: float | None = Field(default_factory=lambda: _get_timeout('TIMEOUT_BrowserProcessExitedEvent', 10.0))  # seconds


class WindowClosedEvent(BaseEvent[None]):
	"""Окно закрыто (ровно один раз за жизнь окна)."""

	reason: str = 'close'

	event_timeout: float | None = Field(default_factory=lambda: _get_timeout('TIMEOUT_WindowClosedEvent', 5.0))  # seconds


class TargetDetachedEvent(BaseEvent[None]):
	"""Target.detachedFromTarget: сессия отключена (вкладка закрыта или браузер упал)."""

	session_id: str | None = None
	target_id: str | None = None

	event_timeout: float | None = Field(default_factory=lambda: _get_timeout('TIMEOUT_TargetDetachedEvent', 5.0))  # seconds
