"""window.controls: состояние окна браузера (свернуть, развернуть, показать)."""

from typing import Any, Literal

from cdpwindow.api.cdp import CDPAccess

WindowState = Literal['normal', 'minimized', 'maximized', 'fullscreen']


class ControlsApi:
	def __init__(self, cdp: CDPAccess):
		self.cdp = cdp
		self._window_id: int | None = None

	async def window_id(self) -> int:
		if self._window_id is None:
			reply = await self.cdp.send('Browser.getWindowForTarget', {'targetId': self.cdp.target_id}, use_session=False)
			self._window_id = reply['windowId']
		return self._window_id

	async def bounds(self) -> dict[str, Any]:
		reply = await self.cdp.send('Browser.getWindowBounds', {'windowId': await self.window_id()}, use_session=False)
		return reply.get('bounds', {})

	async def set_state(self, state: WindowState) -> None:
		# windowState нельзя совмещать с координатами в одном вызове
		await self.cdp.send(
			'Browser.setWindowBounds', {'windowId': await self.window_id(), 'bounds': {'windowState': state}}, use_session=False
		)

	async def minimize(self) -> None:
		await self.set_state('minimized')

	async def maximize(self) -> None:
		await self.set_state('maximized')

	async def show(self) -> None:
		"""Вернуть окно в обычное состояние и вывести на передний план."""
		await self.set_state('normal')
		await self.cdp.send('Page.bringToFront')
