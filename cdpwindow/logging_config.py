import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from cdpwindow.config import CONFIG


def addLoggingLevel(name: str, level_value: int, method_name: str | None = None):
	"""Добавить уровень `name` в модуль logging и метод `method_name` (по умолчанию name.lower()) логгерам.

	AttributeError, если имя уровня или метода уже занято.
	"""
	if not method_name:
		method_name = name.lower()

	if hasattr(logging, name):
		raise AttributeError(f'{name} already defined in logging module')
	if hasattr(logging, method_name):
		raise AttributeError(f'{method_name} already defined in logging module')
	if hasattr(logging.getLoggerClass(), method_name):
		raise AttributeError(f'{method_name} already defined in logger class')

	def log_at_level(self, message, *args, **kwargs):
		if self.isEnabledFor(level_value):
			self._log(level_value, message, args, **kwargs)

	def log_to_root(message, *args, **kwargs):
		logging.log(level_value, message, *args, **kwargs)

	logging.addLevelName(level_value, name)
	setattr(logging, name, level_value)
	setattr(logging.getLoggerClass(), method_name, log_at_level)
	setattr(logging, method_name, log_to_root)


class WindowFormatter(logging.Formatter):
	"""Сокращает имена логгеров cdpwindow.* в режиме INFO, в режиме DEBUG оставляет полные."""

	def __init__(self, format_string, level_value):
		super().__init__(format_string)
		self.level_value = level_value

	def format(self, log_record):
		if self.level_value > logging.DEBUG and isinstance(log_record.name, str) and log_record.name.startswith('cdpwindow.'):
			if 'BrowserWindow' in log_record.name:
				log_record.name = 'BrowserWindow'
			elif '.ipc' in log_record.name:
				log_record.name = 'ipc'
			else:
				# Для остальных модулей использовать последнюю часть
				log_record.name = log_record.name.split('.')[-1]
		return super().format(log_record)


RESULT_LEVEL = 35

# CDPWINDOW_LOGGING_LEVEL -> уровень консоли
_CONSOLE_LEVELS = {'debug': logging.DEBUG, 'info': logging.INFO, 'result': RESULT_LEVEL}

_FILE_FORMAT = '%(asctime)s - %(levelname)-8s [%(name)s] %(message)s'

# Сторонние логгеры, которые окну не интересны
_QUIET_LOGGERS = ('httpx', 'httpcore', 'asyncio', 'websockets')
_CDP_LOGGERS = ('websockets.client', 'cdp_use', 'cdp_use.client', 'cdp_use.cdp', 'cdp_use.cdp.registry')


def _file_handler(path: str, level: int) -> logging.Handler:
	handler = logging.FileHandler(path, encoding='utf-8')
	handler.setLevel(level)
	handler.setFormatter(WindowFormatter(_FILE_FORMAT, level))
	return handler


def _route(logger_name: str, handlers: list[logging.Handler], level: int) -> logging.Logger:
	"""Отдать логгер только нашим обработчикам, без корневого."""
	routed_logger = logging.getLogger(logger_name)
	routed_logger.propagate = False
	for handler in handlers:
		if handler not in routed_logger.handlers:
			routed_logger.addHandler(handler)
	routed_logger.setLevel(level)
	return routed_logger


def setup_logging(stream=None, log_level=None, force_setup=False, debug_log_file=None, info_log_file=None):
	"""Настроить логирование cdpwindow, bubus и cdp_use.

	Args:
		stream: поток консольного вывода (по умолчанию sys.stdout)
		log_level: 'debug', 'info' или 'result' (по умолчанию CONFIG.CDPWINDOW_LOGGING_LEVEL)
		force_setup: перенастроить, даже если у корневого логгера уже есть обработчики
		debug_log_file: файл для всех сообщений начиная с DEBUG
		info_log_file: файл для сообщений начиная с INFO

	Returns:
		логгер 'cdpwindow'
	"""
	try:
		addLoggingLevel('RESULT', RESULT_LEVEL)
	except AttributeError:
		pass  # уже добавлен

	if logging.getLogger().hasHandlers() and not force_setup:
		return logging.getLogger('cdpwindow')

	level_name = (log_level or CONFIG.CDPWINDOW_LOGGING_LEVEL).lower()
	console_level = _CONSOLE_LEVELS.get(level_name, logging.INFO)

	console_handler = logging.StreamHandler(stream or sys.stdout)
	console_handler.setLevel(console_level)
	console_format = '%(message)s' if console_level == RESULT_LEVEL else '%(levelname)-8s [%(name)s] %(message)s'
	console_handler.setFormatter(WindowFormatter(console_format, console_level))

	handlers: list[logging.Handler] = [console_handler]
	if debug_log_file:
		handlers.append(_file_handler(debug_log_file, logging.DEBUG))
	if info_log_file:
		handlers.append(_file_handler(info_log_file, logging.INFO))

	package_level = logging.DEBUG if debug_log_file else console_level

	root_logger = logging.getLogger()
	root_logger.handlers = handlers[:]
	root_logger.setLevel(package_level)

	main_logger = _route('cdpwindow', handlers, package_level)
	_route('bubus', handlers, logging.WARNING if console_level == RESULT_LEVEL else package_level)

	cdp_level = getattr(logging, CONFIG.CDP_LOGGING_LEVEL.upper(), logging.WARNING)
	for cdp_logger_name in _CDP_LOGGERS:
		_route(cdp_logger_name, [console_handler], cdp_level)

	for quiet_logger_name in _QUIET_LOGGERS:
		quiet_logger = logging.getLogger(quiet_logger_name)
		quiet_logger.setLevel(logging.ERROR)
		quiet_logger.propagate = False

	return main_logger
