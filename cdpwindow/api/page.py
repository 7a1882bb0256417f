"""window.page: вычисление кода, заголовок, перезагрузка, ожидание загрузки."""

import asyncio
import json
import logging
from typing import Any

from cdpwindow.api.cdp import CDPAccess
from cdpwindow.session.connection import ProtocolMessage
from cdpwindow.session.controller import SessionController

logger = logging.getLogger(__name__)

READY_STATES = ('complete', 'ready')


class PageApi:
	def __init__(self, cdp: CDPAccess, controller: SessionController):
		self.cdp = cdp
		self.controller = controller
		self._loaded = asyncio.Event()
		self._unhook_load = cdp.on('Page.loadEventFired', self._on_load_event_fired)

	@property
	def loaded(self) -> bool:
		return self._loaded.is_set()

	def mark_loaded(self) -> None:
		self._loaded.set()

	def _on_load_event_fired(self, message: ProtocolMessage) -> None:
		self._loaded.set()

	async def check_ready_state(self) -> bool:
		"""Если документ уже загружен к моменту подключения, loadEventFired не придёт."""
		ready_state = await self.controller.evaluate('document.readyState')
		if ready_state in READY_STATES:
			self._loaded.set()
		return self._loaded.is_set()

	async def wait_for_load(self, timeout: float | None = None) -> None:
		await asyncio.wait_for(self._loaded.wait(), timeout)

	async def eval(self, expression: str, await_promise: bool = False) -> Any:
		"""Вычислить выражение в странице. Исключение страницы возвращается как RemoteEvaluationError."""
		return await self.controller.evaluate(expression, await_promise=await_promise)

	async def title(self) -> str | None:
		return await self.controller.evaluate('document.title')

	async def set_title(self, title: str) -> None:
		await self.controller.evaluate(f'document.title = {json.dumps(title)}')

	async def reload(self, ignore_cache: bool = False) -> None:
		self._loaded.clear()
		await self.cdp.send('Page.reload', {'ignoreCache': ignore_cache})

	async def navigate(self, url: str) -> dict[str, Any]:
		"""Page.navigate. Политика навигации окна применяется и к этим переходам."""
		self._loaded.clear()
		reply = await self.cdp.send('Page.navigate', {'url': url})
		if reply.get('errorText'):
			logger.warning(f'⚠️ Navigation to {url} failed: {reply["errorText"]}')
		return reply

	def close(self) -> None:
		self._unhook_load()
