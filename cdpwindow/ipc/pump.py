"""Доставка сообщений из страницы в Python.

Страница не может сама открыть соединение к Python. Два способа доставки:

- binding: Runtime.addBinding даёт странице функцию, вызов которой приходит
  к нам уведомлением Runtime.bindingCalled. Используется, если браузер его
  поддерживает.
- poll: в цикле вычисляем window.CdpWindow.ipc._get() с awaitPromise - вызов
  висит в странице, пока в очереди не появится сообщение.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Literal

from pydantic import ValidationError

from cdpwindow.config import CONFIG
from cdpwindow.exceptions import RemoteEvaluationError
from cdpwindow.ipc.bootstrap import BINDING_NAME, POLL_EXPRESSION
from cdpwindow.ipc.bridge import IPCBridge
from cdpwindow.ipc.models import Envelope
from cdpwindow.session.connection import ProtocolMessage
from cdpwindow.session.controller import SessionController

logger = logging.getLogger(__name__)

DeliveryMode = Literal['binding', 'poll']


class DeliveryPump:
	"""Переносит конверты из страницы в IPCBridge, пока окно открыто."""

	def __init__(self, controller: SessionController, bridge: IPCBridge, is_closed: Callable[[], bool]):
		self.controller = controller
		self.bridge = bridge
		self._is_closed = is_closed
		self.mode: DeliveryMode | None = None
		self._poll_task: asyncio.Task | None = None
		self._unhook_binding: Callable[[], None] | None = None

	async def prepare(self, preferred_mode: str | None = None) -> DeliveryMode:
		"""Выбрать способ доставки. Вызывается до внедрения скрипта: binding должен уже существовать."""
		preferred_mode = preferred_mode or CONFIG.IPC_DELIVERY_MODE
		if preferred_mode in ('auto', 'binding'):
			try:
				await self.controller.send('Runtime.addBinding', {'name': BINDING_NAME})
				self.controller.connection.watch('Runtime.bindingCalled')
				self._unhook_binding = self.controller.connection.on_message(self._on_binding_called)
				self.mode = 'binding'
			except Exception as e:
				if preferred_mode == 'binding':
					raise
				logger.debug(f'Runtime.addBinding unavailable ({type(e).__name__}: {e}), falling back to polling')
				self.mode = 'poll'
		else:
			self.mode = 'poll'
		logger.debug(f'📬 IPC delivery mode: {self.mode}')
		return self.mode

	def start(self) -> None:
		"""Запустить цикл опроса (для binding ничего запускать не нужно)."""
		assert self.mode is not None, 'DeliveryPump.prepare() must be called first'
		if self.mode == 'poll' and self._poll_task is None:
			self._poll_task = asyncio.create_task(self._poll_loop(), name='ipc_delivery_pump')

	def stop(self) -> None:
		if self._unhook_binding is not None:
			self._unhook_binding()
			self._unhook_binding = None
		if self._poll_task is not None and not self._poll_task.done():
			self._poll_task.cancel()
		self._poll_task = None

	@property
	def running(self) -> bool:
		if self.mode == 'binding':
			return self._unhook_binding is not None
		return self._poll_task is not None and not self._poll_task.done()

	async def _poll_loop(self) -> None:
		retry_delay = CONFIG.IPC_POLL_RETRY_DELAY
		while not self._is_closed():
			try:
				result = await self.controller.evaluate(POLL_EXPRESSION, await_promise=True)
			except asyncio.CancelledError:
				raise
			except Exception as e:
				# например, контекст уничтожен навигацией - скрипт будет внедрён заново
				if self._is_closed():
					break
				logger.debug(f'IPC poll failed: {type(e).__name__}: {e}')
				await asyncio.sleep(retry_delay)
				continue

			if self._is_closed():
				break
			if isinstance(result, RemoteEvaluationError) or not isinstance(result, str):
				# window.CdpWindow ещё не внедрён
				await asyncio.sleep(retry_delay)
				continue
			self._dispatch_raw(result)
		logger.debug('IPC delivery pump stopped')

	def _on_binding_called(self, message: ProtocolMessage) -> None:
		if message.method != 'Runtime.bindingCalled' or self._is_closed():
			return
		if message.session_id is not None and message.session_id != self.controller.session_id:
			return
		if message.params.get('name') != BINDING_NAME:
			return
		self._dispatch_raw(message.params.get('payload', ''))

	def _dispatch_raw(self, raw_message: str) -> None:
		try:
			envelope = Envelope.model_validate(json.loads(raw_message))
		except (ValueError, ValidationError) as e:
			logger.warning(f'⚠️ Dropping malformed IPC message {raw_message[:80]!r}: {e}')
			return
		self.bridge.dispatch(envelope)
