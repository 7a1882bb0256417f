"""Запуск браузера в режиме приложения и открытие окна поверх него."""

import asyncio
import glob
import logging
import os
import platform
import socket
from pathlib import Path
from typing import Any

import httpx
import psutil
from pydantic import BaseModel, ConfigDict, Field, field_validator

from cdpwindow.config import CONFIG
from cdpwindow.session.connection import CDPConnection
from cdpwindow.session.controller import SessionController, not_blank_target
from cdpwindow.session.monitors.process_watchdog import terminate_browser_process
from cdpwindow.session.navigation import NavigationPolicy
from cdpwindow.session.window import BrowserWindow, install_signal_handlers

logger = logging.getLogger(__name__)

WINDOW_DEFAULT_ARGS = [
	'--no-first-run',
	'--no-default-browser-check',
	'--disable-component-update',
	'--disable-background-networking',
	'--disable-breakpad',
	'--disable-sync',
	'--disable-search-engine-choice-screen',
	'--new-window',
	'--log-level=2',
]

CHROME_HEADLESS_ARGS = [
	'--headless=new',
]

CHROME_DOCKER_ARGS = [
	'--no-sandbox',
	'--disable-gpu-sandbox',
	'--disable-setuid-sandbox',
	'--disable-dev-shm-usage',
	'--no-zygote',
]


class WindowSize(BaseModel):
	width: int
	height: int


class WindowProfile(BaseModel):
	"""Настройки запуска одного окна."""

	model_config = ConfigDict(extra='forbid', validate_assignment=True)

	url: str
	navigation_policy: NavigationPolicy = Field(
		default=NavigationPolicy.SAME_ORIGIN, description='Какие навигации пропускать (True = все, False = только исходный URL)'
	)
	executable_path: str | Path | None = Field(default=None, description='Путь к браузеру, иначе ищется установленный')
	user_data_dir: Path | None = Field(default=None, description='Каталог профиля браузера, по умолчанию в CDPWINDOW_DATA_DIR')
	data_dir: Path | None = Field(default=None, description='Каталог данных окна (кэш скриптов)')
	window_size: WindowSize | None = None
	headless: bool = False
	extra_args: list[str] = Field(default_factory=list)

	@field_validator('navigation_policy', mode='before')
	@classmethod
	def _coerce_navigation_policy(cls, value: Any) -> NavigationPolicy:
		return NavigationPolicy.coerce(value)

	def resolved_user_data_dir(self) -> Path:
		return Path(self.user_data_dir).expanduser() if self.user_data_dir else CONFIG.CDPWINDOW_PROFILES_DIR / 'default'

	def get_args(self, debugging_port: int) -> list[str]:
		"""Аргументы командной строки браузера для этого окна."""
		return [
			*WINDOW_DEFAULT_ARGS,
			*self.extra_args,
			f'--app={self.url}',
			f'--remote-debugging-port={debugging_port}',
			f'--user-data-dir={self.resolved_user_data_dir()}',
			*(CHROME_DOCKER_ARGS if CONFIG.IN_DOCKER else []),
			*(CHROME_HEADLESS_ARGS if self.headless else []),
			*([f'--window-size={self.window_size.width},{self.window_size.height}'] if self.window_size else []),
		]


def find_browser_executable() -> str | None:
	"""Найти исполняемый файл браузера семейства Chromium.

	Приоритеты:
	1. CDPWINDOW_BROWSER_PATH
	2. Системный Chrome Stable
	3. Другие установленные браузеры (Chromium -> Chrome Beta/Dev -> Brave -> Edge)

	Returns:
		Путь к исполняемому файлу браузера или None, если не найден
	"""
	if CONFIG.BROWSER_PATH:
		return CONFIG.BROWSER_PATH

	platform_type = platform.system()
	path_patterns = []

	playwright_base_path = os.environ.get('PLAYWRIGHT_BROWSERS_PATH')

	if platform_type == 'Darwin':
		if not playwright_base_path:
			playwright_base_path = '~/Library/Caches/ms-playwright'
		path_patterns = [
			'/Applications/Google Chrome.app/Contents/MacOS/Google Chrome',
			'/Applications/Chromium.app/Contents/MacOS/Chromium',
			'/Applications/Google Chrome Canary.app/Contents/MacOS/Google Chrome Canary',
			'/Applications/Brave Browser.app/Contents/MacOS/Brave Browser',
			'/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge',
			f'{playwright_base_path}/chromium-*/chrome-mac/Chromium.app/Contents/MacOS/Chromium',
		]
	elif platform_type == 'Linux':
		if not playwright_base_path:
			playwright_base_path = '~/.cache/ms-playwright'
		path_patterns = [
			'/usr/bin/google-chrome-stable',
			'/usr/bin/google-chrome',
			'/usr/local/bin/google-chrome',
			'/usr/bin/chromium',
			'/usr/bin/chromium-browser',
			'/usr/local/bin/chromium',
			'/snap/bin/chromium',
			'/usr/bin/google-chrome-beta',
			'/usr/bin/google-chrome-dev',
			'/usr/bin/brave-browser',
			'/usr/bin/microsoft-edge',
			f'{playwright_base_path}/chromium-*/chrome-linux/chrome',
		]
	elif platform_type == 'Windows':
		if not playwright_base_path:
			playwright_base_path = r'%LOCALAPPDATA%\ms-playwright'
		path_patterns = [
			r'C:\Program Files\Google\Chrome\Application\chrome.exe',
			r'C:\Program Files (x86)\Google\Chrome\Application\chrome.exe',
			r'%LOCALAPPDATA%\Google\Chrome\Application\chrome.exe',
			r'C:\Program Files\Chromium\Application\chrome.exe',
			r'%LOCALAPPDATA%\Chromium\Application\chrome.exe',
			r'C:\Program Files\BraveSoftware\Brave-Browser\Application\brave.exe',
			r'C:\Program Files (x86)\Microsoft\Edge\Application\msedge.exe',
			r'C:\Program Files\Microsoft\Edge\Application\msedge.exe',
			f'{playwright_base_path}\\chromium-*\\chrome-win\\chrome.exe',
		]

	for path_pattern in path_patterns:
		resolved_pattern = Path(path_pattern).expanduser()

		# Переменные окружения Windows
		if platform_type == 'Windows':
			pattern_string = str(resolved_pattern)
			for env_variable in ['%LOCALAPPDATA%', '%PROGRAMFILES%', '%PROGRAMFILES(X86)%']:
				if env_variable in pattern_string:
					env_name = env_variable.strip('%').replace('(X86)', ' (x86)')
					env_value = os.environ.get(env_name, '')
					if env_value:
						pattern_string = pattern_string.replace(env_variable, env_value)
			resolved_pattern = Path(pattern_string)

		pattern_string = str(resolved_pattern)

		if '*' in pattern_string:
			matched_paths = sorted(glob.glob(pattern_string))
			# наивысшая версия в алфавитно-цифровом порядке
			if matched_paths and Path(matched_paths[-1]).is_file():
				return matched_paths[-1]
		elif resolved_pattern.is_file():
			return str(resolved_pattern)

	return None


def browser_name_from_executable(executable_path: str | Path) -> str:
	"""'google-chrome-stable' -> 'Chrome', 'msedge.exe' -> 'Edge' и т.п."""
	executable_name = Path(executable_path).name.lower()
	for marker, browser_name in (('edge', 'Edge'), ('brave', 'Brave'), ('chromium', 'Chromium'), ('chrome', 'Chrome')):
		if marker in executable_name:
			return browser_name
	return Path(executable_path).stem


def find_free_port() -> int:
	"""Найти свободный порт для интерфейса отладки."""
	with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as socket_handle:
		socket_handle.bind(('127.0.0.1', 0))
		socket_handle.listen(1)
		return socket_handle.getsockname()[1]


async def wait_for_websocket_url(debugging_port: int, timeout: float = 30) -> str:
	"""Дождаться, пока браузер ответит на /json/version, и вернуть webSocketDebuggerUrl."""
	loop = asyncio.get_running_loop()
	begin_time = loop.time()
	version_url = f'http://127.0.0.1:{debugging_port}/json/version'

	async with httpx.AsyncClient() as client:
		while loop.time() - begin_time < timeout:
			try:
				response = await client.get(version_url)
				if response.status_code == 200:
					return response.json()['webSocketDebuggerUrl']
			except (httpx.HTTPError, KeyError, ValueError):
				# браузер ещё запускается
				pass
			await asyncio.sleep(0.1)

	raise TimeoutError(f'Browser did not expose CDP on port {debugging_port} within {timeout} seconds')


async def launch_browser(profile: WindowProfile) -> tuple[psutil.Process, str, str]:
	"""Запустить браузер для окна.

	Returns:
		(процесс браузера, websocket URL для CDP, имя браузера)
	"""
	executable = str(profile.executable_path) if profile.executable_path else find_browser_executable()
	if not executable:
		raise RuntimeError('No Chromium-based browser found. Install Chrome/Chromium or set CDPWINDOW_BROWSER_PATH')

	profile.resolved_user_data_dir().mkdir(parents=True, exist_ok=True)
	debugging_port = find_free_port()
	browser_args = profile.get_args(debugging_port)

	logger.debug(f'🚀 Launching {executable} with {len(browser_args)} args')
	browser_subprocess = await asyncio.create_subprocess_exec(
		executable,
		*browser_args,
		stdout=asyncio.subprocess.DEVNULL,
		stderr=asyncio.subprocess.DEVNULL,
	)
	browser_process = psutil.Process(browser_subprocess.pid)
	logger.debug(f'🎭 Browser running with browser_pid={browser_process.pid} 🔗 listening on CDP port :{debugging_port}')

	try:
		websocket_url = await wait_for_websocket_url(debugging_port)
	except BaseException:
		await terminate_browser_process(browser_process)
		raise

	return browser_process, websocket_url, browser_name_from_executable(executable)


async def open_window(
	url: str,
	*,
	navigation_policy: NavigationPolicy | str | bool = NavigationPolicy.SAME_ORIGIN,
	profile: WindowProfile | None = None,
	**profile_kwargs: Any,
) -> BrowserWindow:
	"""Запустить браузер с url в режиме приложения и вернуть готовое окно.

	Пример:
		window = await open_window('https://example.com')
		window.ipc.expose('add', lambda a, b: a + b)
		await window.ipc.send('hello', {'from': 'python'})
	"""
	if profile is None:
		profile = WindowProfile(url=url, navigation_policy=navigation_policy, **profile_kwargs)

	browser_process, websocket_url, browser_name = await launch_browser(profile)

	connection: CDPConnection | None = None
	try:
		connection = await CDPConnection.connect(websocket_url)
		controller = SessionController(connection)
		await controller.establish(not_blank_target)

		window = BrowserWindow(
			url=profile.url,
			navigation_policy=profile.navigation_policy,
			controller=controller,
			browser_process=browser_process,
			browser_name=browser_name,
			data_dir=profile.data_dir,
		)
		await window.attach()
	except BaseException:
		if connection is not None:
			await connection.close()
		await terminate_browser_process(browser_process)
		raise

	install_signal_handlers()
	return window
