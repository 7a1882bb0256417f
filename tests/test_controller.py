"""SessionController: поиск вкладки, attach, вычисление скриптов."""

import asyncio

import pytest

from cdpwindow.exceptions import RemoteEvaluationError
from cdpwindow.session.controller import SessionController, not_blank_target, remote_error_from_reply

from tests.conftest import APP_URL, SESSION_ID, TARGET_ID, FakeConnection


@pytest.fixture(autouse=True)
def fast_target_polling(monkeypatch):
	monkeypatch.setenv('CDPWINDOW_TARGET_POLL_INTERVAL', '0.01')


async def test_establish_attaches_and_enables_domains(connection):
	controller = SessionController(connection)

	session = await controller.establish()

	assert session.target_id == TARGET_ID
	assert session.session_id == SESSION_ID
	assert session.enabled_domains == {'Runtime', 'Page'}
	assert connection.calls('Target.attachToTarget') == [{'targetId': TARGET_ID, 'flatten': True}]
	enable_calls = [(method, session_id) for method, _, session_id in connection.sent if method.endswith('.enable')]
	assert enable_calls == [('Runtime.enable', SESSION_ID), ('Page.enable', SESSION_ID)]


async def test_establish_only_once(connection):
	controller = SessionController(connection)
	await controller.establish()

	with pytest.raises(AssertionError):
		await controller.establish()


async def test_target_acquisition_polls_until_a_page_appears():
	connection = FakeConnection()
	polls = []

	def get_targets(params, session_id):
		polls.append(1)
		if len(polls) < 3:
			return {'targetInfos': [{'targetId': 'blank', 'type': 'page', 'url': 'about:blank'}, {'targetId': 'sw', 'type': 'service_worker', 'url': APP_URL}]}
		return {'targetInfos': [{'targetId': TARGET_ID, 'type': 'page', 'url': APP_URL}]}

	connection.responses['Target.getTargets'] = get_targets
	controller = SessionController(connection)

	target_info = await asyncio.wait_for(controller.acquire_target(not_blank_target), timeout=2)

	assert target_info['targetId'] == TARGET_ID
	assert len(polls) == 3


async def test_evaluate_returns_value(connection):
	controller = SessionController(connection)
	await controller.establish()
	connection.expressions['1 + 1'] = 2

	assert await controller.evaluate('1 + 1') == 2
	assert connection.calls('Runtime.evaluate')[-1] == {'expression': '1 + 1', 'returnByValue': True}


async def test_evaluate_returns_remote_error_as_value(connection):
	controller = SessionController(connection)
	await controller.establish()
	connection.expressions['undefinedFunction()'] = ReferenceError('undefinedFunction is not defined')

	result = await controller.evaluate('undefinedFunction()')

	assert isinstance(result, RemoteEvaluationError)
	assert result.class_name == 'ReferenceError'
	assert result.message.startswith('undefinedFunction is not defined')


def test_remote_error_falls_back_to_exception_text():
	error = remote_error_from_reply({'result': {}, 'exceptionDetails': {'text': 'Uncaught SyntaxError'}})

	assert error.class_name == 'Error'
	assert str(error) == 'Error: Uncaught SyntaxError'


async def test_scripts_on_new_document(connection):
	controller = SessionController(connection)
	await controller.establish()

	identifier = await controller.add_script_on_new_document('window.x = 1')
	await controller.remove_script_on_new_document(identifier)

	assert connection.calls('Page.addScriptToEvaluateOnNewDocument') == [{'source': 'window.x = 1'}]
	assert connection.calls('Page.removeScriptToEvaluateOnNewDocument') == [{'identifier': 'script-1'}]
