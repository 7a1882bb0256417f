"""Соединение с браузером по CDP.

ProtocolConnection - минимальный контракт, который нужен окну: отправить
команду (method + params, опционально в сессию) и подписаться на
уведомления. CDPConnection реализует его поверх cdp_use.CDPClient.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from cdp_use import CDPClient
from pydantic import BaseModel, ConfigDict, Field

from cdpwindow.helpers import create_task_with_error_handling

logger = logging.getLogger(__name__)


class ProtocolMessage(BaseModel):
	"""Уведомление CDP, доставляемое подписчикам on_message()."""

	model_config = ConfigDict(revalidate_instances='never')

	method: str
	params: dict[str, Any] = Field(default_factory=dict)
	session_id: str | None = None


MessageHandler = Callable[[ProtocolMessage], Any]


class ProtocolConnection:
	"""Базовое дуплексное соединение: send() + on_message().

	Обработчики могут быть синхронными или async; async-обработчики
	запускаются отдельными задачами, чтобы не блокировать чтение сокета.
	"""

	def __init__(self) -> None:
		self._handlers: list[MessageHandler] = []
		self._closed = False

	@property
	def closed(self) -> bool:
		return self._closed

	async def send(self, method: str, params: dict[str, Any] | None = None, session_id: str | None = None) -> dict[str, Any]:
		raise NotImplementedError

	def on_message(self, handler: MessageHandler) -> Callable[[], None]:
		"""Подписаться на все уведомления. Возвращает функцию отписки."""
		self._handlers.append(handler)

		def unhook() -> None:
			if handler in self._handlers:
				self._handlers.remove(handler)

		return unhook

	def watch(self, method: str) -> None:
		"""Убедиться, что уведомления `method` доходят до on_message()."""
		pass

	def _emit(self, message: ProtocolMessage) -> None:
		for handler in list(self._handlers):
			try:
				result = handler(message)
			except Exception as e:
				logger.error(f'❌ CDP handler {getattr(handler, "__name__", handler)} failed on {message.method}: {type(e).__name__}: {e}')
				continue
			if inspect.isawaitable(result):
				create_task_with_error_handling(
					result,
					name=f'cdp_handler_{message.method}',
					logger_instance=logger,
					suppress_exceptions=True,
				)

	async def close(self) -> None:
		self._closed = True
		self._handlers.clear()


class CDPConnection(ProtocolConnection):
	"""ProtocolConnection поверх websocket-клиента cdp_use."""

	# Уведомления, которые нужны окну с момента подключения
	DEFAULT_EVENTS = (
		'Page.frameScheduledNavigation',
		'Page.frameNavigated',
		'Page.loadEventFired',
		'Page.frameStoppedLoading',
		'Page.compilationCacheProduced',
		'Runtime.executionContextCreated',
		'Runtime.bindingCalled',
		'Target.detachedFromTarget',
	)

	def __init__(self, cdp_client: CDPClient) -> None:
		super().__init__()
		self.cdp_client = cdp_client
		self._watched: set[str] = set()

	@classmethod
	async def connect(cls, ws_url: str, headers: dict[str, str] | None = None) -> 'CDPConnection':
		"""Открыть websocket к браузеру и подписаться на DEFAULT_EVENTS."""
		cdp_client = CDPClient(ws_url, additional_headers=headers, max_ws_frame_size=200 * 1024 * 1024)
		await cdp_client.start()
		connection = cls(cdp_client)
		for method in cls.DEFAULT_EVENTS:
			connection.watch(method)
		logger.debug(f'🔌 Connected to CDP at {ws_url}')
		return connection

	def watch(self, method: str) -> None:
		if method in self._watched:
			return
		domain_name, event_name = method.split('.', 1)
		register = getattr(getattr(self.cdp_client.register, domain_name), event_name)

		# cdp_use вызывает обработчики синхронно, с (event, session_id)
		def on_event(event: Any, session_id: str | None = None) -> None:
			self._emit(ProtocolMessage(method=method, params=dict(event or {}), session_id=session_id))

		register(on_event)
		self._watched.add(method)

	async def send(self, method: str, params: dict[str, Any] | None = None, session_id: str | None = None) -> dict[str, Any]:
		if self._closed:
			raise ConnectionError(f'CDP connection closed, cannot send {method}')
		domain_name, command_name = method.split('.', 1)
		command = getattr(getattr(self.cdp_client.send, domain_name), command_name)
		if params is None:
			result = await command(session_id=session_id)
		else:
			result = await command(params=params, session_id=session_id)
		return dict(result or {})

	async def close(self) -> None:
		if self._closed:
			return
		await super().close()
		try:
			await asyncio.wait_for(self.cdp_client.stop(), timeout=5)
		except Exception as e:
			logger.debug(f'Error closing CDP client: {type(e).__name__}: {e}')
