"""Политика навигации окна."""

from enum import Enum

from cdpwindow.helpers import normalize_url, url_origin

BLANK_URL = 'about:blank'


class NavigationPolicy(str, Enum):
	"""Какие навигации окно пропускает."""

	ALLOW_ALL = 'allow-all'
	SAME_ORIGIN = 'same-origin'
	IDENTICAL_URL = 'identical-url'

	@classmethod
	def coerce(cls, value: 'NavigationPolicy | str | bool') -> 'NavigationPolicy':
		"""True -> ALLOW_ALL, False -> IDENTICAL_URL, строки по значению."""
		if isinstance(value, NavigationPolicy):
			return value
		if value is True:
			return cls.ALLOW_ALL
		if value is False:
			return cls.IDENTICAL_URL
		return cls(value)


def is_navigation_allowed(policy: NavigationPolicy, new_url: str, current_url: str) -> bool:
	"""Разрешена ли навигация на new_url для окна, открытого на current_url."""
	if policy == NavigationPolicy.ALLOW_ALL:
		return True
	# временная пустая страница - не настоящая навигация
	if new_url == BLANK_URL:
		return True
	if policy == NavigationPolicy.SAME_ORIGIN:
		return url_origin(new_url) == url_origin(current_url)
	return normalize_url(new_url) == normalize_url(current_url)


def previous_history_url(history: dict) -> str | None:
	"""URL записи перед текущей в ответе Page.getNavigationHistory, если она есть."""
	current_index = history.get('currentIndex', 0)
	entries = history.get('entries') or []
	if current_index <= 0 or current_index > len(entries):
		return None
	return entries[current_index - 1].get('url') or None
