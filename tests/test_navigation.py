"""Политика навигации и её применение NavigationWatchdog."""

import pytest

from cdpwindow.helpers import normalize_url, url_origin
from cdpwindow.session.events import NavigationBlockedEvent
from cdpwindow.session.navigation import NavigationPolicy, is_navigation_allowed, previous_history_url

from tests.conftest import APP_URL, SESSION_ID, open_fake_window, wait_for

OPENED_URL = 'https://app.example.com/index.html'


@pytest.mark.parametrize(
	'policy, new_url, allowed',
	[
		(NavigationPolicy.ALLOW_ALL, 'https://elsewhere.example.org/', True),
		(NavigationPolicy.SAME_ORIGIN, 'https://app.example.com/settings', True),
		(NavigationPolicy.SAME_ORIGIN, 'https://app.example.com:443/settings', True),
		(NavigationPolicy.SAME_ORIGIN, 'http://app.example.com/index.html', False),
		(NavigationPolicy.SAME_ORIGIN, 'https://evil.example.net/', False),
		(NavigationPolicy.IDENTICAL_URL, OPENED_URL, True),
		(NavigationPolicy.IDENTICAL_URL, 'https://app.example.com/settings', False),
		(NavigationPolicy.IDENTICAL_URL, 'about:blank', True),
		(NavigationPolicy.IDENTICAL_URL, 'HTTPS://App.example.com:443/index.html', True),
		(NavigationPolicy.IDENTICAL_URL, 'https://app.example.com/index.html?tab=2', False),
		(NavigationPolicy.SAME_ORIGIN, 'about:blank', True),
	],
)
def test_navigation_policy(policy, new_url, allowed):
	assert is_navigation_allowed(policy, new_url, OPENED_URL) is allowed


def test_policy_coercion():
	assert NavigationPolicy.coerce(True) is NavigationPolicy.ALLOW_ALL
	assert NavigationPolicy.coerce(False) is NavigationPolicy.IDENTICAL_URL
	assert NavigationPolicy.coerce('same-origin') is NavigationPolicy.SAME_ORIGIN
	with pytest.raises(ValueError):
		NavigationPolicy.coerce('sometimes')


def test_url_origin():
	assert url_origin('https://App.example.com:8443/a?b#c') == 'https://app.example.com:8443'
	assert url_origin('http://localhost:80/') == 'http://localhost'
	assert url_origin('about:blank') == 'null'
	assert url_origin('data:text/html,hi') == 'null'


def test_normalize_url():
	assert normalize_url('https://Example.com') == 'https://example.com/'
	assert normalize_url('http://localhost:80/a?b=1#c') == 'http://localhost/a?b=1#c'
	assert normalize_url('http://localhost:8080') == 'http://localhost:8080/'
	assert normalize_url('about:blank') == 'about:blank'


def test_identical_url_ignores_trailing_slash_on_bare_host():
	assert is_navigation_allowed(NavigationPolicy.IDENTICAL_URL, 'https://example.com/', 'https://example.com') is True
	assert is_navigation_allowed(NavigationPolicy.IDENTICAL_URL, 'https://example.com', 'https://example.com/') is True
	assert is_navigation_allowed(NavigationPolicy.IDENTICAL_URL, 'https://example.com/other', 'https://example.com') is False


def test_previous_history_url():
	history = {'currentIndex': 2, 'entries': [{'url': 'a'}, {'url': 'b'}, {'url': 'c'}]}
	assert previous_history_url(history) == 'b'
	assert previous_history_url({'currentIndex': 0, 'entries': [{'url': 'a'}]}) is None
	assert previous_history_url({}) is None


def _collect_blocked(window) -> list[NavigationBlockedEvent]:
	blocked = []

	async def on_NavigationBlockedEvent(event: NavigationBlockedEvent) -> None:
		blocked.append(event)

	window.event_bus.on(NavigationBlockedEvent, on_NavigationBlockedEvent)
	return blocked


async def test_same_origin_navigation_is_allowed(window_and_remote, connection):
	window, remote = window_and_remote

	connection.emit('Page.frameScheduledNavigation', {'frameId': 'main', 'url': f'{APP_URL}#settings', 'reason': 'anchorClick'})
	await window.event_bus.wait_until_idle()

	assert connection.calls('Page.stopLoading') == []


async def test_scheduled_cross_origin_navigation_is_stopped(window_and_remote, connection):
	window, remote = window_and_remote
	blocked = _collect_blocked(window)

	connection.emit('Page.frameScheduledNavigation', {'frameId': 'main', 'url': 'https://evil.example.net/', 'reason': 'scriptInitiated'})
	await wait_for(lambda: len(blocked) == 1)

	assert len(connection.calls('Page.stopLoading')) == 1
	assert connection.calls('Page.getNavigationHistory') == []
	assert connection.calls('Page.navigate') == []
	assert blocked[0].url == 'https://evil.example.net/'
	assert blocked[0].current_url == APP_URL
	assert blocked[0].reverted_to is None


async def test_completed_cross_origin_navigation_returns_to_previous_entry(window_and_remote, connection):
	window, remote = window_and_remote
	blocked = _collect_blocked(window)
	connection.responses['Page.getNavigationHistory'] = {
		'currentIndex': 1,
		'entries': [{'id': 1, 'url': APP_URL}, {'id': 2, 'url': 'https://evil.example.net/'}],
	}

	connection.emit('Page.frameNavigated', {'frame': {'id': 'main', 'url': 'https://evil.example.net/'}, 'type': 'Navigation'})
	await wait_for(lambda: len(blocked) == 1)

	assert len(connection.calls('Page.stopLoading')) == 1
	assert connection.calls('Page.navigate') == [{'url': APP_URL, 'frameId': 'main'}]
	assert blocked[0].reverted_to == APP_URL
	navigate_sessions = [session_id for method, _, session_id in connection.sent if method == 'Page.navigate']
	assert navigate_sessions == [SESSION_ID]


async def test_completed_navigation_without_history_is_left_alone(window_and_remote, connection):
	window, remote = window_and_remote
	blocked = _collect_blocked(window)

	connection.emit('Page.frameNavigated', {'frame': {'id': 'main', 'url': 'https://evil.example.net/'}})
	await wait_for(lambda: len(blocked) == 1)

	assert len(connection.calls('Page.getNavigationHistory')) == 1
	assert connection.calls('Page.navigate') == []
	assert blocked[0].reverted_to is None


async def test_blank_page_is_always_allowed(connection, tmp_path):
	window, remote = await open_fake_window(connection, tmp_path, navigation_policy=False)
	try:
		connection.emit('Page.frameNavigated', {'frame': {'id': 'main', 'url': 'about:blank'}})
		connection.emit('Page.frameScheduledNavigation', {'frameId': 'main', 'url': APP_URL})
		await window.event_bus.wait_until_idle()

		assert window.navigation_policy is NavigationPolicy.IDENTICAL_URL
		assert connection.calls('Page.stopLoading') == []
	finally:
		window.close()
		await window.wait_closed()


async def test_allow_all_policy_never_stops(connection, tmp_path):
	window, remote = await open_fake_window(connection, tmp_path, navigation_policy=True)
	try:
		connection.emit('Page.frameScheduledNavigation', {'frameId': 'main', 'url': 'https://anywhere.example.org/'})
		await window.event_bus.wait_until_idle()

		assert connection.calls('Page.stopLoading') == []
	finally:
		window.close()
		await window.wait_closed()


async def test_other_sessions_are_ignored(window_and_remote, connection):
	window, remote = window_and_remote

	connection.emit('Page.frameScheduledNavigation', {'frameId': 'x', 'url': 'https://evil.example.net/'}, session_id='other-session')
	await window.event_bus.wait_until_idle()

	assert connection.calls('Page.stopLoading') == []


async def test_browser_reported_url_matches_bare_host_window(connection, tmp_path):
	window, remote = await open_fake_window(connection, tmp_path, url='https://example.com', navigation_policy=False)
	try:
		connection.emit('Page.frameNavigated', {'frame': {'id': 'main', 'url': 'https://example.com/'}})
		await window.event_bus.wait_until_idle()

		assert connection.calls('Page.stopLoading') == []
	finally:
		window.close()
		await window.wait_closed()
