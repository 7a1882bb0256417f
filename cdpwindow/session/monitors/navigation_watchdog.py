"""Watchdog навигации: отклоняет переходы, запрещённые политикой окна."""

from typing import Any, ClassVar

from bubus import BaseEvent

from cdpwindow.helpers import _log_pretty_url
from cdpwindow.session.events import FrameNavigatedEvent, FrameScheduledNavigationEvent, NavigationBlockedEvent
from cdpwindow.session.navigation import is_navigation_allowed, previous_history_url
from cdpwindow.session.watchdog_base import BaseWatchdog


class NavigationWatchdog(BaseWatchdog):
	"""Сверяет каждую навигацию с window.navigation_policy.

	Запланированная навигация (Page.frameScheduledNavigation) просто
	останавливается. Если пришёл только Page.frameNavigated (переход уже
	случился), окно дополнительно возвращается на предыдущую запись истории.
	"""

	LISTENS_TO: ClassVar[list[type[BaseEvent[Any]]]] = [FrameScheduledNavigationEvent, FrameNavigatedEvent]
	EMITS: ClassVar[list[type[BaseEvent[Any]]]] = [NavigationBlockedEvent]

	async def on_FrameScheduledNavigationEvent(self, event: FrameScheduledNavigationEvent) -> None:
		await self._guard(event.url, frame_id=event.frame_id, already_navigated=False)

	async def on_FrameNavigatedEvent(self, event: FrameNavigatedEvent) -> None:
		await self._guard(event.url, frame_id=event.frame_id, already_navigated=True)

	async def _guard(self, new_url: str, frame_id: str | None, already_navigated: bool) -> None:
		if self.window.closed:
			return
		if is_navigation_allowed(self.window.navigation_policy, new_url, self.window.url):
			return

		self.logger.info(f'🚫 Blocked navigation to {_log_pretty_url(new_url)} (policy: {self.window.navigation_policy.value})')
		await self.window.controller.send('Page.stopLoading')

		reverted_to = None
		if already_navigated:
			reverted_to = await self._revert_to_previous_entry(frame_id)

		self.event_bus.dispatch(NavigationBlockedEvent(url=new_url, current_url=self.window.url, reverted_to=reverted_to))

	async def _revert_to_previous_entry(self, frame_id: str | None) -> str | None:
		history = await self.window.controller.send('Page.getNavigationHistory')
		previous_url = previous_history_url(history)
		if previous_url is None:
			self.logger.debug('No previous history entry to return to, leaving page as is')
			return None

		navigate_params: dict[str, Any] = {'url': previous_url}
		if frame_id is not None:
			navigate_params['frameId'] = frame_id
		await self.window.controller.send('Page.navigate', navigate_params)
		self.logger.debug(f'↩️ Returned to {_log_pretty_url(previous_url)}')
		return previous_url
