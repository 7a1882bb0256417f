"""Общие утилиты: фоновые задачи, URL, идентификаторы."""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any
from urllib.parse import urlparse, urlsplit, urlunsplit

from uuid_extensions import uuid7str

logger = logging.getLogger('cdpwindow')

_DEFAULT_PORTS = {'http': 80, 'https': 443, 'ws': 80, 'wss': 443}


def create_task_with_error_handling(
	coroutine: Coroutine[Any, Any, Any],
	*,
	name: str | None = None,
	logger_instance: logging.Logger | None = None,
	suppress_exceptions: bool = False,
) -> asyncio.Task:
	"""Запустить корутину в фоне и залогировать её исключение, если оно не было получено.

	Args:
		coroutine: корутина для запуска
		name: имя задачи для логов
		logger_instance: логгер, по умолчанию логгер пакета
		suppress_exceptions: логировать ошибку как warning вместо error
	"""
	task_logger = logger_instance or logger
	task = asyncio.create_task(coroutine, name=name)

	def _on_done(finished_task: asyncio.Task) -> None:
		if finished_task.cancelled():
			return
		task_error = finished_task.exception()
		if task_error is None:
			return
		task_name = finished_task.get_name()
		if suppress_exceptions:
			task_logger.warning(f'⚠️ Background task {task_name} failed: {type(task_error).__name__}: {task_error}')
		else:
			task_logger.error(f'❌ Background task {task_name} failed: {type(task_error).__name__}: {task_error}', exc_info=task_error)

	task.add_done_callback(_on_done)
	return task


def new_message_id() -> str:
	"""Коррелирующий id для запроса IPC (uuid7: монотонный префикс + случайный хвост)."""
	return uuid7str()


def url_origin(url: str) -> str:
	"""scheme://host[:port] для URL, как window.location.origin."""
	parsed_url = urlparse(url)
	if not parsed_url.scheme or not parsed_url.hostname:
		# about:, data:, file: и т.п. - opaque origin
		return 'null'
	scheme = parsed_url.scheme.lower()
	host = parsed_url.hostname
	port = parsed_url.port
	if port is not None and port != _DEFAULT_PORTS.get(scheme):
		host = f'{host}:{port}'
	return f'{scheme}://{host}'


def normalize_url(url: str) -> str:
	"""URL в том виде, в каком его сообщает браузер: схема и хост в нижнем регистре,
	без порта по умолчанию, пустой путь заменён на '/'.
	"""
	origin = url_origin(url)
	if origin == 'null':
		return url
	parsed_url = urlsplit(url)
	scheme, netloc = origin.split('://', 1)
	return urlunsplit((scheme, netloc, parsed_url.path or '/', parsed_url.query, parsed_url.fragment))


def _log_pretty_url(url: str, max_len: int = 40) -> str:
	"""Укоротить URL для логов."""
	pretty_url = url.replace('https://', '').replace('http://', '').replace('www.', '')
	if len(pretty_url) > max_len:
		return pretty_url[:max_len] + '…'
	return pretty_url
