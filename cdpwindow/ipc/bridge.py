"""Сторона Python моста IPC.

Протокол одинаков на обеих сторонах:

1. Входящее сообщение сначала сверяется с таблицей ожидающих ответов по id.
   Если запрос найден - он разрешается, сообщение дальше не идёт.
2. Иначе сообщение отдаётся всем слушателям его типа по порядку регистрации.
   Первое значение, отличное от None, уходит обратно как 'reply' с тем же id,
   если значения нет - уходит пустой 'pong'.

Так каждый запрос получает ровно один ответ, даже если его никто не слушает.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from cdpwindow.config import CONFIG
from cdpwindow.exceptions import InvalidArgumentError, WindowClosedError
from cdpwindow.helpers import create_task_with_error_handling, new_message_id
from cdpwindow.ipc.models import PONG, REPLY, WEB_STORE_SYNC, WEB_STORE_WRITE, Envelope, exposed_type
from cdpwindow.ipc.store import MirroredStore

logger = logging.getLogger(__name__)

Deliver = Callable[[Envelope], Awaitable[Any]]
Listener = Callable[[Any], Any]


class IPCBridge:
	"""Запросы/ответы, слушатели, открытые функции и зеркальное хранилище."""

	def __init__(self, deliver: Deliver, ipc_logging: bool | None = None):
		"""
		Args:
			deliver: корутина, доставляющая конверт в страницу
			ipc_logging: логировать каждое сообщение (по умолчанию CONFIG.IPC_LOGGING)
		"""
		self._deliver = deliver
		self.ipc_logging = CONFIG.IPC_LOGGING if ipc_logging is None else ipc_logging

		self._pending: dict[str, asyncio.Future] = {}
		self._listeners: dict[str, list[Listener]] = {}
		self._exposed: dict[str, Listener] = {}
		self._background_tasks: set[asyncio.Task] = set()
		self._closed = False

		self.store = MirroredStore(self)
		self.on(WEB_STORE_WRITE, self.store.on_web_store_write)
		self.on(WEB_STORE_SYNC, self.store.on_web_store_sync)

	@property
	def closed(self) -> bool:
		return self._closed

	@property
	def pending_count(self) -> int:
		return len(self._pending)

	# Отправка

	async def send(self, type: str, data: Any = None) -> Any:
		"""Отправить запрос в страницу и дождаться ответа.

		Таймаута нет; при закрытии окна запрос завершается WindowClosedError.
		"""
		if self._closed:
			raise WindowClosedError(f'Cannot send {type!r}: window is closed')

		message_id = new_message_id()
		reply_future: asyncio.Future = asyncio.get_running_loop().create_future()
		self._pending[message_id] = reply_future

		if self.ipc_logging:
			logger.info(f'IPC: send {type!r} id={message_id} data={data!r}')
		try:
			await self._deliver(Envelope(id=message_id, type=type, data=data))
			return await reply_future
		finally:
			# ответ, отмена вызывающим или ошибка доставки - запись больше не нужна
			self._pending.pop(message_id, None)

	def post(self, type: str, data: Any = None) -> asyncio.Task | None:
		"""send() без ожидания результата. На закрытом окне ничего не делает."""
		if self._closed:
			logger.debug(f'Dropping {type!r}: window is closed')
			return None
		task = create_task_with_error_handling(
			self.send(type, data), name=f'ipc_post_{type}', logger_instance=logger, suppress_exceptions=True
		)
		self._track(task)
		return task

	async def call(self, key: str, *args: Any) -> Any:
		"""Вызвать функцию, открытую в странице через CdpWindow.ipc.expose()."""
		return await self.send(exposed_type(key), list(args))

	async def _reply(self, type: str, data: Any, message_id: str) -> None:
		if self._closed:
			return
		if self.ipc_logging:
			logger.info(f'IPC: {type} id={message_id} data={data!r}')
		await self._deliver(Envelope(id=message_id, type=type, data=data))

	# Приём

	async def receive(self, envelope: Envelope | dict[str, Any]) -> None:
		"""Обработать конверт, пришедший из страницы."""
		if not isinstance(envelope, Envelope):
			envelope = Envelope.model_validate(envelope)

		if envelope.id is not None:
			reply_future = self._pending.pop(envelope.id, None)
			if reply_future is not None:
				if not reply_future.done():
					reply_future.set_result(envelope.data)
				return

		if envelope.is_reply:
			# ответ без ожидающего запроса: отвечать на него - значит зациклить pong
			logger.debug(f'Dropping unmatched {envelope.type} id={envelope.id}')
			return

		if self.ipc_logging:
			logger.info(f'IPC: recv {envelope.type!r} id={envelope.id} data={envelope.data!r}')

		reply_value = None
		for listener in list(self._listeners.get(envelope.type, [])):
			try:
				result = listener(envelope.data)
				if inspect.isawaitable(result):
					result = await result
			except Exception as e:
				logger.error(f'❌ IPC listener for {envelope.type!r} failed: {type(e).__name__}: {e}', exc_info=True)
				continue
			if reply_value is None:
				reply_value = result

		if envelope.id is None:
			return
		if reply_value is not None:
			await self._reply(REPLY, reply_value, envelope.id)
		else:
			await self._reply(PONG, None, envelope.id)

	def dispatch(self, envelope: Envelope) -> asyncio.Task:
		"""receive() отдельной задачей, чтобы слушатель, ждущий send(), не блокировал доставку."""
		task = create_task_with_error_handling(
			self.receive(envelope), name=f'ipc_receive_{envelope.type}', logger_instance=logger, suppress_exceptions=True
		)
		self._track(task)
		return task

	# Слушатели

	def on(self, type: str, listener: Listener) -> None:
		self._listeners.setdefault(type, []).append(listener)

	def remove_listener(self, type: str, listener: Listener) -> bool:
		listeners = self._listeners.get(type)
		if not listeners or listener not in listeners:
			return False
		listeners.remove(listener)
		if not listeners:
			del self._listeners[type]
		return True

	removeListener = remove_listener

	def listeners(self, type: str) -> list[Listener]:
		return list(self._listeners.get(type, []))

	# Открытые функции

	def expose(self, key_or_functions: str | Mapping[str, Callable[..., Any]], function: Callable[..., Any] | None = None) -> None:
		"""Открыть функции Python для вызова из страницы.

		expose('add', add) или expose({'add': add, 'sub': sub}).
		Страница вызывает их как CdpWindow.ipc.call('add', 2, 3).
		"""
		if isinstance(key_or_functions, str):
			functions = {key_or_functions: function}
		elif isinstance(key_or_functions, Mapping) and function is None:
			functions = dict(key_or_functions)
		else:
			raise InvalidArgumentError('Invalid arguments (expected mapping, or key and function)')

		# проверить всё до регистрации первого обработчика
		for key, exposed_function in functions.items():
			if not isinstance(key, str) or not callable(exposed_function):
				raise InvalidArgumentError(f'Invalid arguments for {key!r} (expected string, function)')

		for key, exposed_function in functions.items():
			self._expose_one(key, exposed_function)

	def _expose_one(self, key: str, exposed_function: Callable[..., Any]) -> None:
		if self.ipc_logging:
			logger.info(f'IPC: expose {key!r}')
		self.unexpose(key)

		async def exposed_listener(data: Any) -> Any:
			call_args = data if isinstance(data, list) else ([] if data is None else [data])
			result = exposed_function(*call_args)
			if inspect.isawaitable(result):
				result = await result
			return result

		exposed_listener.__name__ = f'exposed_{key}'
		self._exposed[key] = exposed_listener
		self.on(exposed_type(key), exposed_listener)

	def unexpose(self, key: str) -> bool:
		exposed_listener = self._exposed.pop(key, None)
		if exposed_listener is None:
			return False
		return self.remove_listener(exposed_type(key), exposed_listener)

	@property
	def exposed(self) -> list[str]:
		return list(self._exposed)

	# Жизненный цикл

	def close(self) -> None:
		"""Завершить все ожидающие запросы ошибкой и отменить фоновые задачи."""
		if self._closed:
			return
		self._closed = True

		# сначала фоновые задачи: их ожидаемые ответы отменяются вместе с ними
		for task in list(self._background_tasks):
			if not task.done():
				task.cancel()
		self._background_tasks.clear()

		pending = list(self._pending.values())
		self._pending.clear()
		for reply_future in pending:
			if not reply_future.done():
				reply_future.set_exception(WindowClosedError('Window closed before a reply arrived'))
		if pending:
			logger.debug(f'Failed {len(pending)} pending IPC request(s) on close')

	def _track(self, task: asyncio.Task) -> None:
		self._background_tasks.add(task)
		task.add_done_callback(self._background_tasks.discard)
