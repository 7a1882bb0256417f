"""Прямой доступ к CDP для кода приложения."""

from collections.abc import Callable
from typing import Any

from cdpwindow.session.connection import MessageHandler, ProtocolMessage
from cdpwindow.session.controller import SessionController


class CDPAccess:
	"""window.cdp: отправка произвольных команд и подписка на уведомления."""

	def __init__(self, controller: SessionController):
		self.controller = controller

	@property
	def session_id(self) -> str | None:
		return self.controller.session_id

	@property
	def target_id(self) -> str | None:
		return self.controller.session.target_id if self.controller.session else None

	async def send(self, method: str, params: dict[str, Any] | None = None, use_session: bool = True) -> dict[str, Any]:
		"""Отправить команду. use_session=False - на уровень браузера."""
		session_id = self.session_id if use_session else None
		return await self.controller.connection.send(method, params if params is not None else {}, session_id)

	def on(self, method: str, handler: MessageHandler, once: bool = False) -> Callable[[], None]:
		"""Подписаться на уведомление `method` сессии окна (или браузера). Возвращает функцию отписки."""
		connection = self.controller.connection
		connection.watch(method)

		def on_message(message: ProtocolMessage) -> Any:
			if message.method != method:
				return None
			if message.session_id is not None and message.session_id != self.session_id:
				return None
			if once:
				unhook()
			return handler(message)

		unhook = connection.on_message(on_message)
		return unhook
