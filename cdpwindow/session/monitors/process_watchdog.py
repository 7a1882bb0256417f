"""Watchdog процесса браузера: закрывает окно, когда браузер завершился или отключил сессию."""

import asyncio
import logging
from typing import Any, ClassVar

import psutil
from bubus import BaseEvent
from pydantic import Field, PrivateAttr

from cdpwindow.helpers import create_task_with_error_handling
from cdpwindow.session.events import BrowserProcessExitedEvent, TargetDetachedEvent
from cdpwindow.session.watchdog_base import BaseWatchdog

logger = logging.getLogger(__name__)


def _has_exited(browser_process: psutil.Process) -> bool:
	try:
		return not browser_process.is_running() or browser_process.status() in (psutil.STATUS_DEAD, psutil.STATUS_ZOMBIE)
	except psutil.NoSuchProcess:
		return True


def _reap_exit_code(browser_process: psutil.Process) -> int | None:
	"""Код возврата, если процесс - наш дочерний и уже завершился."""
	try:
		return browser_process.wait(timeout=0)
	except (psutil.TimeoutExpired, psutil.Error, ChildProcessError):
		return None


async def terminate_browser_process(browser_process: psutil.Process | None, timeout: float = 5.0) -> None:
	"""Завершить процесс браузера: terminate, подождать, затем kill."""
	if not browser_process:
		return

	try:
		browser_process.terminate()

		for _ in range(int(timeout / 0.1)):
			if _has_exited(browser_process):
				return
			await asyncio.sleep(0.1)

		if not _has_exited(browser_process):
			logger.debug(f'Browser process {browser_process.pid} ignored SIGTERM, killing it')
			browser_process.kill()
			await asyncio.sleep(0.1)
	except psutil.NoSuchProcess:
		pass
	except psutil.Error as e:
		logger.debug(f'Error terminating browser process {browser_process.pid}: {type(e).__name__}: {e}')


def kill_browser_process(browser_process: psutil.Process | None) -> None:
	"""Синхронный вариант для закрытия без event loop (atexit)."""
	if not browser_process:
		return
	try:
		browser_process.kill()
	except psutil.NoSuchProcess:
		pass
	except psutil.Error as e:
		logger.debug(f'Error killing browser process {browser_process.pid}: {type(e).__name__}: {e}')


class ProcessWatchdog(BaseWatchdog):
	"""Следит за процессом браузера окна."""

	LISTENS_TO: ClassVar[list[type[BaseEvent[Any]]]] = [BrowserProcessExitedEvent, TargetDetachedEvent]
	EMITS: ClassVar[list[type[BaseEvent[Any]]]] = [BrowserProcessExitedEvent]

	check_interval_seconds: float = Field(default=0.5)

	_monitoring_task: asyncio.Task | None = PrivateAttr(default=None)

	def start_monitoring(self) -> None:
		if self.window.browser_process is None:
			self.logger.debug('[ProcessWatchdog] No browser process attached, nothing to monitor')
			return
		if self._monitoring_task and not self._monitoring_task.done():
			return

		self._monitoring_task = create_task_with_error_handling(
			self._monitoring_loop(), name='browser_process_monitor', logger_instance=logger, suppress_exceptions=True
		)

	def stop_monitoring(self) -> None:
		if self._monitoring_task and not self._monitoring_task.done():
			# не отменять себя же, если закрытие пришло из цикла мониторинга
			if self._monitoring_task is not asyncio.current_task():
				self._monitoring_task.cancel()
		self._monitoring_task = None

	async def _monitoring_loop(self) -> None:
		browser_process = self.window.browser_process
		assert browser_process is not None

		while not self.window.closed:
			if _has_exited(browser_process):
				exit_code = _reap_exit_code(browser_process)
				self.logger.info(f'🛑 Browser process {browser_process.pid} exited (code {exit_code})')
				self.event_bus.dispatch(BrowserProcessExitedEvent(pid=browser_process.pid, exit_code=exit_code))
				return
			await asyncio.sleep(self.check_interval_seconds)

	async def on_BrowserProcessExitedEvent(self, event: BrowserProcessExitedEvent) -> None:
		self.window.close(reason='process-exit')

	async def on_TargetDetachedEvent(self, event: TargetDetachedEvent) -> None:
		if event.session_id != self.window.controller.session_id:
			return
		self.logger.info(f'🔌 Session {event.session_id} detached from target {event.target_id}')
		self.window.close(reason='detached')
