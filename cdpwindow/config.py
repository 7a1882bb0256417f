"""Конфигурация окон с ленивым чтением переменных окружения."""

import logging
import os
from functools import cache
from pathlib import Path
from typing import Any

import psutil
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


@cache
def is_running_in_docker() -> bool:
	"""Определить, запущены ли мы в контейнере Docker (нужен --no-sandbox и отключение dev shm)."""
	try:
		if Path('/.dockerenv').exists() or 'docker' in Path('/proc/1/cgroup').read_text().lower():
			return True
	except Exception:
		pass

	try:
		# если меньше 10 всего запущенных процессов, то мы почти наверняка в контейнере
		if len(psutil.pids()) < 10:
			return True
	except Exception:
		pass

	return False


class OldConfig:
	"""Свойства с преобразованиями, которые перечитывают окружение при каждом доступе."""

	_directories_created = False

	@property
	def CDPWINDOW_LOGGING_LEVEL(self) -> str:
		return os.getenv('CDPWINDOW_LOGGING_LEVEL', 'info').lower()

	@property
	def IPC_LOGGING(self) -> bool:
		return os.getenv('CDPWINDOW_IPC_LOGGING', 'false').lower()[:1] in 'ty1'

	@property
	def IPC_DELIVERY_MODE(self) -> str:
		delivery_mode = os.getenv('CDPWINDOW_IPC_DELIVERY_MODE', 'auto').lower()
		assert delivery_mode in ('auto', 'binding', 'poll'), 'CDPWINDOW_IPC_DELIVERY_MODE must be auto, binding or poll'
		return delivery_mode

	@property
	def IPC_POLL_RETRY_DELAY(self) -> float:
		return float(os.getenv('CDPWINDOW_IPC_POLL_RETRY_DELAY', '0.1'))

	@property
	def TARGET_POLL_INTERVAL(self) -> float:
		return float(os.getenv('CDPWINDOW_TARGET_POLL_INTERVAL', '0.2'))

	@property
	def BROWSER_PATH(self) -> str | None:
		return os.getenv('CDPWINDOW_BROWSER_PATH') or None

	# Конфигурация путей
	@property
	def XDG_CACHE_HOME(self) -> Path:
		return Path(os.getenv('XDG_CACHE_HOME', '~/.cache')).expanduser().resolve()

	@property
	def CDPWINDOW_DATA_DIR(self) -> Path:
		data_directory = Path(os.getenv('CDPWINDOW_DATA_DIR', str(self.XDG_CACHE_HOME / 'cdpwindow'))).expanduser().resolve()
		self._ensure_dirs(data_directory)
		return data_directory

	@property
	def CDPWINDOW_PROFILES_DIR(self) -> Path:
		return self.CDPWINDOW_DATA_DIR / 'profiles'

	def _ensure_dirs(self, data_directory: Path) -> None:
		"""Создать директории, если они не существуют (только один раз)"""
		if not self._directories_created:
			data_directory.mkdir(parents=True, exist_ok=True)
			(data_directory / 'profiles').mkdir(parents=True, exist_ok=True)
			OldConfig._directories_created = True

	# Подсказки времени выполнения
	@property
	def IN_DOCKER(self) -> bool:
		return os.getenv('IN_DOCKER', 'false').lower()[:1] in 'ty1' or is_running_in_docker()


class FlatEnvConfig(BaseSettings):
	"""Все переменные окружения в плоском пространстве имен."""

	model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', case_sensitive=True, extra='allow')

	# Логирование
	CDPWINDOW_LOGGING_LEVEL: str = Field(default='info')
	CDP_LOGGING_LEVEL: str = Field(default='WARNING')
	CDPWINDOW_DEBUG_LOG_FILE: str | None = Field(default=None)
	CDPWINDOW_INFO_LOG_FILE: str | None = Field(default=None)
	CDPWINDOW_IPC_LOGGING: bool = Field(default=False)

	# Доставка IPC и поиск вкладки
	CDPWINDOW_IPC_DELIVERY_MODE: str = Field(default='auto')
	CDPWINDOW_IPC_POLL_RETRY_DELAY: float = Field(default=0.1)
	CDPWINDOW_TARGET_POLL_INTERVAL: float = Field(default=0.2)

	# Браузер и пути
	CDPWINDOW_BROWSER_PATH: str | None = Field(default=None)
	CDPWINDOW_DATA_DIR: str | None = Field(default=None)
	XDG_CACHE_HOME: str = Field(default='~/.cache')

	IN_DOCKER: bool | None = Field(default=None)

	@property
	def DEBUG_LOG_FILE(self) -> str | None:
		return self.CDPWINDOW_DEBUG_LOG_FILE

	@property
	def INFO_LOG_FILE(self) -> str | None:
		return self.CDPWINDOW_INFO_LOG_FILE


class Config:
	"""Объединяет OldConfig и FlatEnvConfig; переменные окружения перечитываются при каждом доступе."""

	def __getattr__(self, attribute_name: str) -> Any:
		if attribute_name.startswith('_'):
			raise AttributeError(f"'{self.__class__.__name__}' object has no attribute '{attribute_name}'")

		# Создать свежие экземпляры при каждом доступе
		legacy_config = OldConfig()
		if hasattr(legacy_config, attribute_name):
			return getattr(legacy_config, attribute_name)

		env_config_instance = FlatEnvConfig()
		if hasattr(env_config_instance, attribute_name):
			return getattr(env_config_instance, attribute_name)

		raise AttributeError(f"'{self.__class__.__name__}' object has no attribute '{attribute_name}'")


# Create singleton instance
CONFIG = Config()
