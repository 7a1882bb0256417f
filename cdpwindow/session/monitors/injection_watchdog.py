"""Внедрение скриптов в страницу, переживающее перезагрузки и навигации."""

from collections.abc import Awaitable, Callable
from typing import Any, ClassVar

from bubus import BaseEvent
from pydantic import PrivateAttr

from cdpwindow.exceptions import RemoteEvaluationError
from cdpwindow.session.events import ExecutionContextCreatedEvent
from cdpwindow.session.watchdog_base import BaseWatchdog


class ScriptInjector(BaseWatchdog):
	"""Держит скрипты внедрёнными во все будущие документы окна.

	Каждый скрипт:
	- вычисляется сразу в текущем документе,
	- регистрируется через Page.addScriptToEvaluateOnNewDocument,
	- вычисляется повторно при каждом новом execution context.

	Скрипты должны быть идемпотентны (bootstrap проверяет window.CdpWindow).
	"""

	LISTENS_TO: ClassVar[list[type[BaseEvent[Any]]]] = [ExecutionContextCreatedEvent]

	_sources: list[str] = PrivateAttr(default_factory=list)
	_identifiers: list[str] = PrivateAttr(default_factory=list)

	@property
	def sources(self) -> list[str]:
		return list(self._sources)

	async def inject(self, source: str) -> Callable[[], Awaitable[None]]:
		"""Внедрить скрипт. Возвращает корутину повторного вычисления в текущем документе."""
		self._sources.append(source)

		async def reapply() -> None:
			await self._evaluate_tolerantly(source)

		await reapply()
		self._identifiers.append(await self.window.controller.add_script_on_new_document(source))
		return reapply

	async def on_ExecutionContextCreatedEvent(self, event: ExecutionContextCreatedEvent) -> None:
		if self.window.closed:
			return
		for source in list(self._sources):
			await self._evaluate_tolerantly(source)

	async def remove_all(self) -> None:
		"""Снять регистрацию всех скриптов для новых документов."""
		identifiers, self._identifiers = self._identifiers, []
		for identifier in identifiers:
			await self.window.controller.remove_script_on_new_document(identifier)
		self._sources.clear()

	async def _evaluate_tolerantly(self, source: str) -> None:
		# контекст может исчезнуть между событием и вычислением (перезагрузка в процессе)
		try:
			result = await self.window.controller.evaluate(source)
		except Exception as e:
			self.logger.debug(f'Script injection skipped: {type(e).__name__}: {e}')
			return
		if isinstance(result, RemoteEvaluationError):
			self.logger.debug(f'Script injection raised in page: {result}')
