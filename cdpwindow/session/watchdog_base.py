"""Базовый класс watchdog: компонент окна, подписанный на события его шины."""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from functools import cache
from typing import Any, ClassVar

from bubus import BaseEvent, EventBus
from pydantic import BaseModel, ConfigDict, Field

from cdpwindow.session.window import BrowserWindow

EventHandler = Callable[[BaseEvent[Any]], Awaitable[Any]]


@cache
def _window_event_classes() -> dict[str, type[BaseEvent[Any]]]:
	"""Все события окна по имени класса."""
	from cdpwindow.session import events

	return {
		name: value
		for name, value in vars(events).items()
		if inspect.isclass(value) and issubclass(value, BaseEvent) and value is not BaseEvent
	}


def _describe_parent(event_bus: EventBus, event: BaseEvent[Any]) -> str:
	parent_event = event_bus.event_history.get(event.event_parent_id) if event.event_parent_id else None
	if parent_event is None:
		return '👈 by CDP'
	return f'↲  triggered by on_{parent_event.event_type}#{parent_event.event_id[-4:]}'


class BaseWatchdog(BaseModel):
	"""Watchdog окна.

	Методы вида on_<EventName>(self, event) регистрируются на шине окна
	автоматически в attach_to_window(). LISTENS_TO/EMITS описывают
	события watchdog; если LISTENS_TO не пуст, обработчик события вне списка
	считается ошибкой.
	"""

	model_config = ConfigDict(
		arbitrary_types_allowed=True,
		extra='forbid',
		validate_assignment=False,
		revalidate_instances='never',  # иначе стираются приватные атрибуты
	)

	LISTENS_TO: ClassVar[list[type[BaseEvent[Any]]]] = []
	EMITS: ClassVar[list[type[BaseEvent[Any]]]] = []

	window: BrowserWindow = Field()
	event_bus: EventBus = Field()

	@property
	def logger(self):
		return self.window.logger

	@staticmethod
	def attach_handler_to_window(window: 'BrowserWindow', event_class: type[BaseEvent[Any]], handler: EventHandler) -> None:
		"""Зарегистрировать handler на шине окна под уникальным именем Watchdog.on_Event.

		Обёртка пишет в debug-лог начало и длительность обработки; ошибки
		логируются (на закрывающемся окне - только в debug) и пробрасываются
		в шину.
		"""
		handler_name = getattr(handler, '__name__', '')
		assert handler_name == f'on_{event_class.__name__}', f'Handler {handler_name!r} must be named on_{event_class.__name__}'

		owner_name = type(getattr(handler, '__self__', None)).__name__
		registered_name = f'{owner_name}.{handler_name}'
		event_bus = window.event_bus

		already_registered = {getattr(h, '__name__', None) for h in event_bus.handlers.get(event_class.__name__, [])}
		if registered_name in already_registered:
			raise RuntimeError(f'{registered_name} is already registered for {event_class.__name__}; attach_to_window() called twice?')

		async def timed_handler(event: BaseEvent[Any]) -> Any:
			label = f'[{registered_name}(#{event.event_id[-4:]})]'.ljust(54)
			window.logger.debug(f'🚌 {label} ⏳ Starting...       {_describe_parent(event_bus, event)}')
			started_at = time.time()
			try:
				result = await handler(event)
			except Exception as e:
				if window.closed:
					window.logger.debug(f'🚌 {label} Aborted, window closed: {type(e).__name__}: {e}')
				else:
					window.logger.error(f'🚌 {label} ❌ Failed ({time.time() - started_at:.2f}s): {type(e).__name__}: {e}')
				raise
			window.logger.debug(f'🚌 {label} Succeeded ({time.time() - started_at:.2f}s)')
			return result

		timed_handler.__name__ = registered_name
		event_bus.on(event_class, timed_handler)

	def attach_to_window(self) -> None:
		"""Подписать все on_<EventName> методы на шину окна."""
		event_classes = _window_event_classes()
		attached: set[type[BaseEvent[Any]]] = set()

		for method_name in dir(self):
			event_class = event_classes.get(method_name.removeprefix('on_')) if method_name.startswith('on_') else None
			if event_class is None:
				continue
			method = getattr(self, method_name)
			if self.LISTENS_TO and event_class not in self.LISTENS_TO:
				raise AssertionError(f'{type(self).__name__}.{method_name} handles {event_class.__name__}, which is missing from LISTENS_TO')
			self.attach_handler_to_window(self.window, event_class, method)
			attached.add(event_class)

		unhandled = [event_class.__name__ for event_class in self.LISTENS_TO if event_class not in attached]
		if unhandled:
			self.logger.warning(f'[{type(self).__name__}] LISTENS_TO declares {unhandled} without on_<Event> handlers')

	def __del__(self) -> None:
		# задачи хранятся в приватных атрибутах _<name>_task / _<name>_tasks
		for attr_name in getattr(self, '__pydantic_private__', None) or {}:
			value = getattr(self, attr_name, None)
			tasks = value if isinstance(value, (list, set, tuple)) else [value]
			for task in tasks:
				if isinstance(task, asyncio.Task) and not task.done():
					task.cancel()
