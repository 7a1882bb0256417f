"""Управление CDP-сессией окна: поиск вкладки, attach, вычисление скриптов.

SessionController владеет одной сессией на одну вкладку. Сессия создаётся
один раз и никогда не переподключается; уведомления этой сессии
переводятся в события bubus на шине окна.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from cdpwindow.config import CONFIG
from cdpwindow.exceptions import RemoteEvaluationError
from cdpwindow.session.connection import ProtocolConnection, ProtocolMessage
from cdpwindow.session.events import (
	ExecutionContextCreatedEvent,
	FrameNavigatedEvent,
	FrameScheduledNavigationEvent,
	PageLoadedEvent,
	TargetDetachedEvent,
)

if TYPE_CHECKING:
	from bubus import EventBus

logger = logging.getLogger(__name__)

TargetFilter = Callable[[dict[str, Any]], bool]

# Домены, которые включаются на сессии до того, как окно станет доступно
REQUIRED_DOMAINS = ('Runtime', 'Page')


class Session(BaseModel):
	"""Прикреплённая к вкладке CDP-сессия."""

	model_config = ConfigDict(revalidate_instances='never')

	target_id: str
	session_id: str
	enabled_domains: set[str] = Field(default_factory=set)


def not_blank_target(target_info: dict[str, Any]) -> bool:
	"""Фильтр для запуска: пропустить ещё пустую вкладку по умолчанию."""
	return target_info.get('url') != 'about:blank'


def remote_error_from_reply(reply: dict[str, Any]) -> RemoteEvaluationError:
	"""Собрать ошибку из Runtime.evaluate с exceptionDetails.

	Берём className и описание исключения (без префикса "Name:"), иначе
	текст из exceptionDetails.
	"""
	remote_object = reply.get('result') or {}
	exception_details = reply.get('exceptionDetails') or {}
	description = remote_object.get('description')
	if description and ':' in description:
		message = description.split(':', 1)[1].strip()
	else:
		message = description or exception_details.get('text') or 'Uncaught'
	return RemoteEvaluationError(message, class_name=remote_object.get('className'))


class SessionController:
	"""Сессия окна поверх ProtocolConnection."""

	def __init__(self, connection: ProtocolConnection):
		self.connection = connection
		self.session: Session | None = None
		self._unhook_events: Callable[[], None] | None = None

	@property
	def session_id(self) -> str | None:
		return self.session.session_id if self.session else None

	async def acquire_target(self, target_filter: TargetFilter | None = None) -> dict[str, Any]:
		"""Опрашивать Target.getTargets, пока не появится подходящая вкладка.

		Ограничения по времени нет: опрос продолжается, пока вкладка не найдётся.
		"""
		poll_interval = CONFIG.TARGET_POLL_INTERVAL
		attempt = 0
		while True:
			attempt += 1
			reply = await self.connection.send('Target.getTargets')
			page_targets = [target for target in reply.get('targetInfos', []) if target.get('type') == 'page']
			if target_filter is not None:
				page_targets = [target for target in page_targets if target_filter(target)]
			if page_targets:
				target_info = page_targets[0]
				logger.debug(f'🎯 Acquired page target #{target_info["targetId"][-4:]} after {attempt} poll(s): {target_info.get("url")}')
				return target_info
			if attempt == 1:
				logger.debug('⏳ Waiting for a page target...')
			await asyncio.sleep(poll_interval)

	async def establish(self, target_filter: TargetFilter | None = None) -> Session:
		"""Найти вкладку, прикрепиться к ней и включить Runtime + Page."""
		assert self.session is None, 'SessionController.establish() may only be called once per window'

		target_info = await self.acquire_target(target_filter)
		attach_reply = await self.connection.send(
			'Target.attachToTarget', {'targetId': target_info['targetId'], 'flatten': True}
		)
		session = Session(target_id=target_info['targetId'], session_id=attach_reply['sessionId'])

		for domain_name in REQUIRED_DOMAINS:
			await self.connection.send(f'{domain_name}.enable', {}, session.session_id)
			session.enabled_domains.add(domain_name)

		self.session = session
		logger.debug(f'🔗 Session {session.session_id[-4:]} attached to target #{session.target_id[-4:]}')
		return session

	async def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
		"""Отправить команду в сессию окна."""
		assert self.session is not None, 'Session not established'
		return await self.connection.send(method, params if params is not None else {}, self.session.session_id)

	async def evaluate(self, expression: str, await_promise: bool = False) -> Any:
		"""Вычислить выражение в странице.

		Returns:
			Значение результата (returnByValue), или RemoteEvaluationError,
			если скрипт выбросил исключение. Ошибки протокола пробрасываются.
		"""
		params: dict[str, Any] = {'expression': expression, 'returnByValue': True}
		if await_promise:
			params['awaitPromise'] = True
		reply = await self.send('Runtime.evaluate', params)

		if reply.get('exceptionDetails'):
			return remote_error_from_reply(reply)

		remote_object = reply.get('result') or {}
		return remote_object.get('value')

	async def add_script_on_new_document(self, source: str) -> str:
		reply = await self.send('Page.addScriptToEvaluateOnNewDocument', {'source': source})
		return reply['identifier']

	async def remove_script_on_new_document(self, identifier: str) -> None:
		await self.send('Page.removeScriptToEvaluateOnNewDocument', {'identifier': identifier})

	def forward_events(self, event_bus: 'EventBus') -> Callable[[], None]:
		"""Переводить уведомления своей сессии в события шины окна."""

		def on_message(message: ProtocolMessage) -> None:
			if message.session_id is not None and message.session_id != self.session_id:
				return
			event = self._to_event(message)
			if event is not None:
				event_bus.dispatch(event)

		self._unhook_events = self.connection.on_message(on_message)
		return self._unhook_events

	@staticmethod
	def _to_event(message: ProtocolMessage) -> Any:
		params = message.params
		if message.method == 'Page.frameScheduledNavigation':
			return FrameScheduledNavigationEvent(url=params.get('url', ''), frame_id=params.get('frameId'), reason=params.get('reason'))
		if message.method == 'Page.frameNavigated':
			frame = params.get('frame') or {}
			return FrameNavigatedEvent(
				url=frame.get('url') or params.get('url', ''),
				frame_id=frame.get('id'),
				parent_frame_id=frame.get('parentId'),
			)
		if message.method == 'Runtime.executionContextCreated':
			context = params.get('context') or {}
			return ExecutionContextCreatedEvent(context_id=context.get('id'), origin=context.get('origin'))
		if message.method == 'Page.loadEventFired':
			return PageLoadedEvent()
		if message.method == 'Target.detachedFromTarget':
			return TargetDetachedEvent(session_id=params.get('sessionId'), target_id=params.get('targetId'))
		return None

	def detach_events(self) -> None:
		if self._unhook_events is not None:
			self._unhook_events()
			self._unhook_events = None
