"""Формат сообщений IPC между Python и страницей."""

from typing import Any

from pydantic import BaseModel, ConfigDict

# Служебные типы сообщений
REPLY = 'reply'
PONG = 'pong'
WEB_STORE_WRITE = 'web store write'
BACKEND_STORE_WRITE = 'backend store write'
WEB_STORE_SYNC = 'web store sync'
EXPOSED_PREFIX = 'exposed '

REPLY_TYPES = frozenset({REPLY, PONG})


def exposed_type(key: str) -> str:
	"""Тип сообщения для вызова функции, открытой под именем key."""
	return EXPOSED_PREFIX + key


class Envelope(BaseModel):
	"""Единица обмена {id, type, data}.

	id есть у каждого запроса; ответ (reply/pong) несёт id запроса.
	"""

	model_config = ConfigDict(extra='ignore', revalidate_instances='never')

	id: str | None = None
	type: str
	data: Any = None

	@property
	def is_reply(self) -> bool:
		return self.type in REPLY_TYPES
