"""Хранилище ключ-значение, зеркалируемое между Python и страницей."""

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from cdpwindow.exceptions import ReservedKeyError
from cdpwindow.ipc.models import BACKEND_STORE_WRITE

if TYPE_CHECKING:
	from cdpwindow.ipc.bridge import IPCBridge

logger = logging.getLogger(__name__)

# Имена методов хранилища и моста: такие ключи нельзя записать или удалить
RESERVED_KEYS = frozenset(
	{
		'get',
		'set',
		'delete',
		'keys',
		'toJSON',
		'to_json',
		'send',
		'on',
		'removeListener',
		'remove_listener',
		'expose',
		'unexpose',
		'call',
		'store',
	}
)


class MirroredStore:
	"""Сторона Python зеркального хранилища.

	Запись и удаление сразу меняют локальную копию и отправляют
	'backend store write' в страницу, не дожидаясь подтверждения.
	Записи из страницы приходят как 'web store write'.
	"""

	def __init__(self, bridge: 'IPCBridge'):
		self._bridge = bridge
		self._data: dict[str, Any] = {}

	def get(self, key: str, default: Any = None) -> Any:
		return self._data.get(key, default)

	def set(self, key: str, value: Any) -> Any:
		self._check_key(key)
		self._data[key] = value
		self._propagate({'key': key, 'value': value})
		return value

	def delete(self, key: str) -> None:
		self._check_key(key)
		self._data.pop(key, None)
		# без 'value' - в JS это undefined, т.е. удаление
		self._propagate({'key': key})

	def keys(self) -> list[str]:
		return list(self._data)

	def to_json(self) -> dict[str, Any]:
		return dict(self._data)

	toJSON = to_json

	def __getitem__(self, key: str) -> Any:
		return self._data[key]

	def __setitem__(self, key: str, value: Any) -> None:
		self.set(key, value)

	def __delitem__(self, key: str) -> None:
		self.delete(key)

	def __contains__(self, key: object) -> bool:
		return key in self._data

	def __iter__(self) -> Iterator[str]:
		return iter(list(self._data))

	def __len__(self) -> int:
		return len(self._data)

	def __repr__(self) -> str:
		return f'MirroredStore({self._data!r})'

	@staticmethod
	def _check_key(key: str) -> None:
		if key in RESERVED_KEYS:
			raise ReservedKeyError(key)

	def _propagate(self, payload: dict[str, Any]) -> None:
		if self._bridge.ipc_logging:
			logger.info(f'IPC: store write (backend) {payload.get("key")!r} = {payload.get("value")!r}')
		self._bridge.post(BACKEND_STORE_WRITE, payload)

	# Обработчики входящих сообщений из страницы

	def on_web_store_write(self, data: dict[str, Any]) -> None:
		key = data.get('key')
		if not isinstance(key, str) or key in RESERVED_KEYS:
			logger.warning(f'⚠️ Ignoring web store write for invalid key {key!r}')
			return
		if self._bridge.ipc_logging:
			logger.info(f'IPC: store write (web) {key!r} = {data.get("value")!r}')
		if 'value' not in data:
			self._data.pop(key, None)
		else:
			self._data[key] = data['value']

	def on_web_store_sync(self, data: Any) -> dict[str, Any]:
		return self.to_json()
