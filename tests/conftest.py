"""Общие фикстуры: поддельное CDP-соединение и поддельная сторона страницы."""

import asyncio
import inspect
import json
import os
from collections.abc import Callable
from typing import Any

os.environ.setdefault('CDPWINDOW_SETUP_LOGGING', 'false')

import pytest

from cdpwindow.ipc.bootstrap import BINDING_NAME, GLOBAL_NAME, POLL_EXPRESSION
from cdpwindow.ipc.bridge import IPCBridge
from cdpwindow.ipc.models import BACKEND_STORE_WRITE, EXPOSED_PREFIX, PONG, REPLY, WEB_STORE_SYNC, WEB_STORE_WRITE, Envelope
from cdpwindow.session.connection import ProtocolConnection, ProtocolMessage
from cdpwindow.session.controller import SessionController
from cdpwindow.session.window import BrowserWindow

APP_URL = 'https://app.example.com/index.html'
TARGET_ID = 'target-0001'
SESSION_ID = 'session-0001'
RECEIVE_PREFIX = f'window.{GLOBAL_NAME}.ipc._receive('


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
	"""Ждать, пока predicate() не станет истинным."""
	loop = asyncio.get_running_loop()
	deadline = loop.time() + timeout
	while not predicate():
		if loop.time() > deadline:
			raise AssertionError('condition not met in time')
		await asyncio.sleep(0.01)


class FakeRemote:
	"""Сторона страницы (window.CdpWindow.ipc), сыгранная на Python.

	push(raw) доставляет сериализованный конверт в Python: через binding,
	через очередь опроса или прямо в IPCBridge.
	"""

	def __init__(self, push: Callable[[str], Any]):
		self._push = push
		self.listeners: dict[str, list[Callable[[Any], Any]]] = {}
		self.pending: dict[str, asyncio.Future] = {}
		self.store: dict[str, Any] = {}
		self.received: list[dict[str, Any]] = []
		self._counter = 0
		self.on(BACKEND_STORE_WRITE, self._on_backend_store_write)

	def on(self, type: str, listener: Callable[[Any], Any]) -> None:
		self.listeners.setdefault(type, []).append(listener)

	def expose(self, key: str, function: Callable[..., Any]) -> None:
		self.on(EXPOSED_PREFIX + key, lambda args: function(*args))

	def push(self, envelope: dict[str, Any]) -> None:
		self._push(json.dumps(envelope))

	async def send(self, type: str, data: Any = None) -> Any:
		self._counter += 1
		message_id = f'remote-{self._counter}'
		reply_future = asyncio.get_running_loop().create_future()
		self.pending[message_id] = reply_future
		self.push({'id': message_id, 'type': type, 'data': data})
		return await reply_future

	def set_store(self, key: str, value: Any) -> asyncio.Task:
		self.store[key] = value
		return asyncio.ensure_future(self.send(WEB_STORE_WRITE, {'key': key, 'value': value}))

	def delete_store(self, key: str) -> asyncio.Task:
		self.store.pop(key, None)
		return asyncio.ensure_future(self.send(WEB_STORE_WRITE, {'key': key}))

	async def receive(self, envelope: dict[str, Any]) -> None:
		self.received.append(envelope)
		message_id, type, data = envelope.get('id'), envelope['type'], envelope.get('data')

		if message_id is not None and message_id in self.pending:
			self.pending.pop(message_id).set_result(data)
			return
		if type in (REPLY, PONG):
			return

		reply_value = None
		for listener in list(self.listeners.get(type, [])):
			result = listener(data)
			if inspect.isawaitable(result):
				result = await result
			if reply_value is None:
				reply_value = result

		if message_id is None:
			return
		if reply_value is not None:
			self.push({'id': message_id, 'type': REPLY, 'data': reply_value})
		else:
			self.push({'id': message_id, 'type': PONG, 'data': None})

	def deliver(self, envelope: dict[str, Any]) -> None:
		"""Как вызов _receive() из Runtime.evaluate: не ждёт обработки."""
		asyncio.ensure_future(self.receive(envelope))

	def _on_backend_store_write(self, data: dict[str, Any]) -> None:
		if 'value' not in data:
			self.store.pop(data['key'], None)
		else:
			self.store[data['key']] = data['value']

	def received_types(self) -> list[str]:
		return [envelope['type'] for envelope in self.received]


class FakeConnection(ProtocolConnection):
	"""ProtocolConnection без браузера: записывает команды, отвечает по таблице responses.

	Значение в responses - dict, исключение (будет выброшено) или
	функция (params, session_id) -> ответ, возможно async.
	"""

	def __init__(self, page_url: str = APP_URL):
		super().__init__()
		self.sent: list[tuple[str, dict[str, Any] | None, str | None]] = []
		self.watched: set[str] = set()
		self.remote: FakeRemote | None = None
		self.poll_queue: asyncio.Queue[str] = asyncio.Queue()
		self.expressions: dict[str, Any] = {'document.readyState': 'complete'}
		self.responses: dict[str, Any] = {
			'Target.getTargets': {'targetInfos': [{'targetId': TARGET_ID, 'type': 'page', 'url': page_url}]},
			'Target.attachToTarget': {'sessionId': SESSION_ID},
			'Browser.getVersion': {'product': 'Chrome/126.0.6478.126', 'jsVersion': '12.6.228.21'},
			'Page.addScriptToEvaluateOnNewDocument': {'identifier': 'script-1'},
			'Page.getNavigationHistory': {'currentIndex': 0, 'entries': [{'id': 1, 'url': page_url}]},
			'Runtime.evaluate': self._evaluate,
		}

	def watch(self, method: str) -> None:
		self.watched.add(method)

	async def send(self, method: str, params: dict[str, Any] | None = None, session_id: str | None = None) -> dict[str, Any]:
		if self._closed:
			raise ConnectionError(f'CDP connection closed, cannot send {method}')
		self.sent.append((method, params, session_id))
		response = self.responses.get(method, {})
		if isinstance(response, Exception):
			raise response
		if callable(response):
			response = response(params or {}, session_id)
			if inspect.isawaitable(response):
				response = await response
		return dict(response)

	def emit(self, method: str, params: dict[str, Any] | None = None, session_id: str | None = SESSION_ID) -> None:
		self._emit(ProtocolMessage(method=method, params=params or {}, session_id=session_id))

	def calls(self, method: str) -> list[dict[str, Any] | None]:
		return [params for sent_method, params, _ in self.sent if sent_method == method]

	def evaluated(self) -> list[str]:
		return [params['expression'] for params in self.calls('Runtime.evaluate') if params]

	def push_binding(self, raw_message: str) -> None:
		self.emit('Runtime.bindingCalled', {'name': BINDING_NAME, 'payload': raw_message, 'executionContextId': 1})

	async def _evaluate(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
		expression = params['expression']
		if expression.startswith(RECEIVE_PREFIX):
			envelope = json.loads(expression[len(RECEIVE_PREFIX) : -1])
			if self.remote is None:
				return _thrown('TypeError', "Cannot read properties of undefined (reading 'ipc')")
			self.remote.deliver(envelope)
			return {'result': {'type': 'object', 'subtype': 'promise'}}
		if expression == POLL_EXPRESSION:
			return {'result': {'type': 'string', 'value': await self.poll_queue.get()}}
		if expression in self.expressions:
			value = self.expressions[expression]
			if isinstance(value, Exception):
				return _thrown(type(value).__name__, str(value))
			return {'result': {'type': 'object', 'value': value}}
		return {'result': {'type': 'undefined'}}


def _thrown(class_name: str, message: str) -> dict[str, Any]:
	return {
		'result': {'type': 'object', 'subtype': 'error', 'className': class_name, 'description': f'{class_name}: {message}\n    at <anonymous>:1:1'},
		'exceptionDetails': {'exceptionId': 1, 'text': 'Uncaught', 'lineNumber': 0, 'columnNumber': 0},
	}


@pytest.fixture
def connection() -> FakeConnection:
	return FakeConnection()


@pytest.fixture
def bridge_pair() -> tuple[IPCBridge, FakeRemote]:
	"""IPCBridge, соединённый напрямую с FakeRemote (без CDP)."""
	bridge_holder: list[IPCBridge] = []
	remote = FakeRemote(push=lambda raw: bridge_holder[0].dispatch(Envelope.model_validate_json(raw)))

	async def deliver(envelope: Envelope) -> None:
		remote.deliver(envelope.model_dump())

	bridge = IPCBridge(deliver, ipc_logging=False)
	bridge_holder.append(bridge)
	return bridge, remote


async def open_fake_window(connection: FakeConnection, data_dir, **window_kwargs: Any) -> tuple[BrowserWindow, FakeRemote]:
	remote = FakeRemote(push=connection.push_binding)
	connection.remote = remote

	controller = SessionController(connection)
	await controller.establish()
	window = BrowserWindow(url=window_kwargs.pop('url', APP_URL), controller=controller, data_dir=data_dir, **window_kwargs)
	await window.attach()
	return window, remote


@pytest.fixture
async def window_and_remote(connection: FakeConnection, tmp_path):
	window, remote = await open_fake_window(connection, tmp_path)
	yield window, remote
	window.close()
	await asyncio.wait_for(window.wait_closed(), timeout=10)
