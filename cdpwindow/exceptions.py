"""Исключения для всех компонентов окна."""


class CdpWindowError(Exception):
	"""Базовое исключение пакета."""

	pass


class RemoteEvaluationError(CdpWindowError):
	"""Ошибка, выброшенная скриптом внутри страницы.

	Не выбрасывается при вычислении: возвращается как значение, вызывающий код
	должен сам проверять isinstance(result, RemoteEvaluationError).
	"""

	def __init__(self, message: str, class_name: str | None = None):
		super().__init__(message)
		self.class_name = class_name or 'Error'
		self.message = message

	def __str__(self) -> str:
		return f'{self.class_name}: {self.message}'


class InvalidArgumentError(CdpWindowError, TypeError):
	"""Неверные аргументы для expose()."""

	pass


class ReservedKeyError(CdpWindowError, KeyError):
	"""Попытка записать или удалить зарезервированный ключ хранилища."""

	def __init__(self, key: str):
		super().__init__(key)
		self.key = key

	def __str__(self) -> str:
		return f'Cannot overwrite IPC built-in {self.key!r}'


class WindowClosedError(CdpWindowError):
	"""Окно закрыто: запрос больше не получит ответа."""

	pass
