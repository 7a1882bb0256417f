"""BrowserWindow - страница браузера, управляемая по CDP, с мостом IPC.

Окно собирает вместе сессию, watchdogs (навигация, внедрение скриптов,
процесс браузера), мост IPC с насосом доставки и тонкие API поверх CDP.
Закрытие окна - одна синхронная идемпотентная процедура close(), к которой
сходятся все поводы: явный вызов, завершение процесса браузера, выход
интерпретатора и сигналы SIGINT/SIGUSR1/SIGUSR2/SIGTERM.
"""

import asyncio
import atexit
import inspect
import logging
import signal
from collections.abc import Callable
from pathlib import Path
from typing import Any

import psutil
from bubus import EventBus
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator
from uuid_extensions import uuid7str

from cdpwindow.api import CDPAccess, ControlsApi, IdleApi, PageApi, ResourcesApi, ScriptCacheApi
from cdpwindow.config import CONFIG
from cdpwindow.exceptions import RemoteEvaluationError, WindowClosedError
from cdpwindow.helpers import create_task_with_error_handling
from cdpwindow.ipc.bootstrap import render_bootstrap, receive_expression
from cdpwindow.ipc.bridge import IPCBridge
from cdpwindow.ipc.models import Envelope
from cdpwindow.ipc.pump import DeliveryPump
from cdpwindow.session.controller import SessionController
from cdpwindow.session.events import WindowClosedEvent
from cdpwindow.session.navigation import NavigationPolicy

logger = logging.getLogger(__name__)

# Открытые окна процесса: их закрывают atexit и обработчики сигналов
_open_windows: dict[str, 'BrowserWindow'] = {}

INTERRUPT_SIGNALS = ('SIGINT', 'SIGUSR1', 'SIGUSR2', 'SIGTERM')
_signal_loop: asyncio.AbstractEventLoop | None = None
_interrupted = False


class VersionInfo(BaseModel):
	name: str
	version: str
	major: int | None = None


def _version_info(name: str, version: str) -> VersionInfo:
	major_part = version.split('.')[0]
	return VersionInfo(name=name, version=version, major=int(major_part) if major_part.isdigit() else None)


class WindowVersions(BaseModel):
	"""Версии браузера, движка и JS-движка окна."""

	product: VersionInfo
	engine: VersionInfo
	js_engine: VersionInfo

	@classmethod
	def from_browser_version(cls, browser_version: dict[str, Any], browser_name: str | None = None) -> 'WindowVersions':
		"""Из ответа Browser.getVersion ('product': 'Chrome/126.0.6478.126', 'jsVersion': '12.6.228.21')."""
		product_name, _, product_version = browser_version.get('product', '').partition('/')
		engine_name = 'firefox' if product_name.lower().startswith('firefox') else 'chromium'
		return cls(
			product=_version_info(browser_name or product_name, product_version),
			engine=_version_info(engine_name, product_version),
			js_engine=_version_info('spidermonkey' if engine_name == 'firefox' else 'v8', browser_version.get('jsVersion', '')),
		)

	def to_remote(self) -> dict[str, Any]:
		"""Форма для window.CdpWindow.versions."""
		return {
			'product': self.product.model_dump(),
			'engine': self.engine.model_dump(),
			'jsEngine': self.js_engine.model_dump(),
		}


class BrowserWindow(BaseModel):
	"""Окно браузера: сессия CDP + мост IPC + тонкие API.

	Создаётся launcher.open_window(); attach() вызывается на уже
	установленной сессии контроллера.
	"""

	model_config = ConfigDict(arbitrary_types_allowed=True, revalidate_instances='never')

	id: str = Field(default_factory=uuid7str)
	url: str
	navigation_policy: NavigationPolicy = NavigationPolicy.SAME_ORIGIN
	controller: SessionController
	browser_process: psutil.Process | None = None
	browser_name: str | None = None
	data_dir: Path | None = None
	versions: WindowVersions | None = None
	close_handlers: list[Callable[[], Any]] = Field(default_factory=list)

	event_bus: EventBus = Field(default_factory=EventBus)

	_closed: bool = PrivateAttr(default=False)
	_closed_event: asyncio.Event = PrivateAttr(default_factory=asyncio.Event)
	_teardown_task: asyncio.Task | None = PrivateAttr(default=None)

	_ipc: IPCBridge | None = PrivateAttr(default=None)
	_pump: DeliveryPump | None = PrivateAttr(default=None)
	_cdp: CDPAccess | None = PrivateAttr(default=None)
	_page: PageApi | None = PrivateAttr(default=None)
	_idle: IdleApi | None = PrivateAttr(default=None)
	_controls: ControlsApi | None = PrivateAttr(default=None)
	_resources: ResourcesApi | None = PrivateAttr(default=None)
	_script_cache: ScriptCacheApi | None = PrivateAttr(default=None)

	# Watchdogs
	_navigation_watchdog: Any | None = PrivateAttr(default=None)
	_script_injector: Any | None = PrivateAttr(default=None)
	_process_watchdog: Any | None = PrivateAttr(default=None)

	@field_validator('navigation_policy', mode='before')
	@classmethod
	def _coerce_navigation_policy(cls, value: Any) -> NavigationPolicy:
		return NavigationPolicy.coerce(value)

	@property
	def logger(self) -> logging.Logger:
		return logging.getLogger(f'cdpwindow.{self}')

	def __str__(self) -> str:
		return f'BrowserWindow {self.id[-4:]}'

	def __repr__(self) -> str:
		return f'BrowserWindow {self.id[-4:]} (url={self.url}, closed={self._closed})'

	@property
	def closed(self) -> bool:
		return self._closed

	@property
	def ipc(self) -> IPCBridge:
		assert self._ipc is not None, 'Window is not attached yet'
		return self._ipc

	@property
	def cdp(self) -> CDPAccess:
		assert self._cdp is not None, 'Window is not attached yet'
		return self._cdp

	@property
	def page(self) -> PageApi:
		assert self._page is not None, 'Window is not attached yet'
		return self._page

	@property
	def idle(self) -> IdleApi:
		assert self._idle is not None, 'Window is not attached yet'
		return self._idle

	@property
	def controls(self) -> ControlsApi:
		assert self._controls is not None, 'Window is not attached yet'
		return self._controls

	@property
	def resources(self) -> ResourcesApi:
		assert self._resources is not None, 'Window is not attached yet'
		return self._resources

	@property
	def script_cache(self) -> ScriptCacheApi:
		assert self._script_cache is not None, 'Window is not attached yet'
		return self._script_cache

	@property
	def script_injector(self) -> Any:
		return self._script_injector

	@property
	def delivery_mode(self) -> str | None:
		return self._pump.mode if self._pump else None

	# Подключение

	async def attach(self) -> 'BrowserWindow':
		"""Подключить watchdogs, мост IPC и API к установленной сессии."""
		assert self.controller.session is not None, 'SessionController.establish() must be called before attach()'

		self.controller.forward_events(self.event_bus)
		await self.attach_all_watchdogs()

		browser_version = await self.controller.connection.send('Browser.getVersion')
		self.versions = WindowVersions.from_browser_version(browser_version, self.browser_name)
		self.logger.debug(f'🌐 browser: {browser_version.get("product")}')

		self._cdp = CDPAccess(self.controller)
		self._page = PageApi(self._cdp, self.controller)

		self._ipc = IPCBridge(self._deliver_envelope)
		self._pump = DeliveryPump(self.controller, self._ipc, lambda: self._closed)
		# binding должен существовать до внедрения bootstrap, иначе скрипт выберет очередь
		await self._pump.prepare()
		await self._script_injector.inject(render_bootstrap(self.versions.to_remote()))
		self._pump.start()

		self._idle = IdleApi(self._cdp)
		self._controls = ControlsApi(self._cdp)
		self._resources = ResourcesApi(self._cdp)
		cache_dir = self.data_dir / 'script_cache' if self.data_dir else CONFIG.CDPWINDOW_DATA_DIR / 'script_cache'
		self._script_cache = ScriptCacheApi(self._cdp, self._page, cache_dir, self.url)

		await self._page.check_ready_state()

		_open_windows[self.id] = self
		self.logger.info(f'✅ Window ready: {self.url} (IPC via {self._pump.mode})')
		return self

	async def attach_all_watchdogs(self) -> None:
		from cdpwindow.session.monitors.injection_watchdog import ScriptInjector
		from cdpwindow.session.monitors.navigation_watchdog import NavigationWatchdog
		from cdpwindow.session.monitors.process_watchdog import ProcessWatchdog

		if self._script_injector is not None:
			self.logger.debug('Watchdogs already attached, skipping duplicate attachment')
			return

		NavigationWatchdog.model_rebuild()
		self._navigation_watchdog = NavigationWatchdog(window=self, event_bus=self.event_bus)
		self._navigation_watchdog.attach_to_window()

		ScriptInjector.model_rebuild()
		self._script_injector = ScriptInjector(window=self, event_bus=self.event_bus)
		self._script_injector.attach_to_window()

		ProcessWatchdog.model_rebuild()
		self._process_watchdog = ProcessWatchdog(window=self, event_bus=self.event_bus)
		self._process_watchdog.attach_to_window()
		self._process_watchdog.start_monitoring()

	async def _deliver_envelope(self, envelope: Envelope) -> None:
		if self._closed:
			raise WindowClosedError(f'Cannot deliver {envelope.type!r}: window is closed')
		result = await self.controller.evaluate(receive_expression(envelope.model_dump_json()))
		if isinstance(result, RemoteEvaluationError):
			raise result

	# Закрытие

	def close(self, reason: str = 'close') -> bool:
		"""Закрыть окно. Первый вызов возвращает True, все последующие - False.

		Синхронная часть (обработчики закрытия, ожидающие запросы IPC, насос)
		выполняется сразу; закрытие браузера и соединения - фоновой задачей,
		дождаться её можно через wait_closed().
		"""
		if self._closed:
			return False
		self._closed = True
		_open_windows.pop(self.id, None)
		self.logger.info(f'🛑 Closing window ({reason})')

		for close_handler in list(self.close_handlers):
			try:
				result = close_handler()
				if inspect.isawaitable(result):
					create_task_with_error_handling(result, name='window_close_handler', logger_instance=self.logger)
			except Exception as e:
				self.logger.error(f'❌ Close handler {getattr(close_handler, "__name__", close_handler)} failed: {type(e).__name__}: {e}')

		if self._ipc is not None:
			self._ipc.close()
		if self._pump is not None:
			self._pump.stop()
		if self._page is not None:
			self._page.close()
		if self._process_watchdog is not None:
			self._process_watchdog.stop_monitoring()
		self.controller.detach_events()

		try:
			loop = asyncio.get_running_loop()
		except RuntimeError:
			loop = None

		if loop is not None:
			self._teardown_task = create_task_with_error_handling(
				self._teardown(reason), name='window_teardown', logger_instance=self.logger, suppress_exceptions=True
			)
		else:
			# без event loop (atexit): соединение уже не закрыть, только процесс
			from cdpwindow.session.monitors.process_watchdog import kill_browser_process

			kill_browser_process(self.browser_process)
			self._closed_event.set()
		return True

	async def _teardown(self, reason: str) -> None:
		from cdpwindow.session.monitors.process_watchdog import terminate_browser_process

		try:
			try:
				closed_event = self.event_bus.dispatch(WindowClosedEvent(reason=reason))
				await closed_event
			except Exception as e:
				self.logger.debug(f'WindowClosedEvent handlers failed: {type(e).__name__}: {e}')

			connection = self.controller.connection
			if not connection.closed:
				try:
					# браузер может закрыть сокет, не ответив
					await asyncio.wait_for(connection.send('Browser.close'), timeout=1.0)
				except Exception as e:
					self.logger.debug(f'Browser.close did not complete: {type(e).__name__}: {e}')
				await connection.close()

			await terminate_browser_process(self.browser_process)
			await self.event_bus.stop(clear=True, timeout=5)
			self.logger.debug('Window closed')
		finally:
			self._closed_event.set()

	async def wait_closed(self) -> None:
		"""Дождаться окончания закрытия окна (не инициирует его)."""
		await self._closed_event.wait()


def _close_all_windows(reason: str) -> list[BrowserWindow]:
	windows = list(_open_windows.values())
	for window in windows:
		window.close(reason=reason)
	return windows


@atexit.register
def _close_windows_at_exit() -> None:
	_close_all_windows('exit')


async def _exit_after_close(windows: list[BrowserWindow], timeout: float = 15.0) -> None:
	if windows:
		await asyncio.wait([asyncio.ensure_future(window.wait_closed()) for window in windows], timeout=timeout)
	raise SystemExit(0)


def _on_interrupt(signal_name: str) -> asyncio.Future | None:
	"""Закрыть все окна и запланировать выход. Повторный сигнал игнорируется."""
	global _interrupted
	if _interrupted:
		return None
	_interrupted = True

	logger.info(f'🛑 Received {signal_name}, closing all windows')
	windows = _close_all_windows(f'signal:{signal_name}')
	return asyncio.ensure_future(_exit_after_close(windows))


def install_signal_handlers(loop: asyncio.AbstractEventLoop | None = None) -> None:
	"""Закрывать все окна и завершать процесс по SIGINT/SIGUSR1/SIGUSR2/SIGTERM."""
	global _signal_loop
	loop = loop or asyncio.get_running_loop()
	if _signal_loop is loop:
		return

	for signal_name in INTERRUPT_SIGNALS:
		signal_number = getattr(signal, signal_name, None)
		if signal_number is None:
			# например, SIGUSR1/SIGUSR2 на Windows
			continue
		try:
			loop.add_signal_handler(signal_number, _on_interrupt, signal_name)
		except (NotImplementedError, RuntimeError):
			try:
				signal.signal(
					signal_number,
					lambda signum, frame, name=signal_name: loop.call_soon_threadsafe(_on_interrupt, name),
				)
			except ValueError as e:
				# не главный поток
				logger.debug(f'Cannot install {signal_name} handler: {e}')
	_signal_loop = loop
