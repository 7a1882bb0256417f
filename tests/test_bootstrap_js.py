"""Внедряемый скрипт window.CdpWindow, выполненный в node.

Страница подменяется глобальным объектом node, binding - функцией,
складывающей исходящие конверты в outbox.
"""

import json
import shutil
import subprocess

import pytest

from cdpwindow.ipc.bootstrap import BINDING_NAME, GLOBAL_NAME, render_bootstrap
from cdpwindow.ipc.models import BACKEND_STORE_WRITE, PONG, REPLY, WEB_STORE_SYNC, WEB_STORE_WRITE

pytestmark = pytest.mark.skipif(shutil.which('node') is None, reason='node is not installed')

VERSIONS = {'product': {'name': 'Chrome', 'version': '126.0', 'major': 126}}

_PAGE_TEMPLATE = """
const outbox = [];
globalThis.window = globalThis;
window.%(binding)s = raw => { outbox.push(JSON.parse(raw)); };

%(bootstrap)s

const ipc = window.%(global)s.ipc;
const sentWith = id => outbox.filter(envelope => envelope.id === id).pop();
const results = {};

(async () => {
%(scenario)s
})().then(
  () => process.stdout.write(JSON.stringify(results)),
  error => { console.error(error); process.exit(1); }
);
"""


@pytest.fixture
def run_in_page(tmp_path):
	"""Выполнить сценарий JS рядом со скриптом окна; вернуть объект results."""

	def run(scenario: str) -> dict:
		page_script = tmp_path / 'page.js'
		page_script.write_text(
			_PAGE_TEMPLATE
			% {'binding': BINDING_NAME, 'global': GLOBAL_NAME, 'bootstrap': render_bootstrap(VERSIONS), 'scenario': scenario}
		)
		completed = subprocess.run(['node', str(page_script)], capture_output=True, text=True, timeout=10, check=True)
		return json.loads(completed.stdout)

	return run


def test_first_defined_listener_result_is_the_reply(run_in_page):
	results = run_in_page("""
  ipc.on('order', () => undefined);
  ipc.on('order', () => 'A');
  ipc.on('order', () => 'B');
  await ipc._receive({ id: 'r1', type: 'order', data: null });
  results.reply = sentWith('r1');
""")

	assert results['reply'] == {'id': 'r1', 'type': REPLY, 'data': 'A'}


def test_unhandled_request_gets_pong(run_in_page):
	results = run_in_page("""
  await ipc._receive({ id: 'r2', type: 'nobody listens', data: 1 });
  results.reply = sentWith('r2');
""")

	assert results['reply'] == {'id': 'r2', 'type': PONG, 'data': None}


def test_store_rejects_reserved_keys(run_in_page):
	results = run_in_page("""
  try {
    ipc.store.set('send', 1);
    results.error = null;
  } catch (e) {
    results.error = e.message;
  }
  results.keys = ipc.store.keys();
""")

	assert 'send' in results['error']
	assert results['keys'] == []


def test_store_writes_are_mirrored_both_ways(run_in_page):
	results = run_in_page("""
  ipc.store.set('theme', 'dark');
  results.written = outbox.filter(envelope => envelope.type === %(web_store_write)s).map(envelope => envelope.data);

  await ipc._receive({ id: null, type: %(backend_store_write)s, data: { key: 'volume', value: 7 } });
  results.volume = ipc.store.get('volume');

  const sync = outbox.find(envelope => envelope.type === %(web_store_sync)s);
  await ipc._receive({ id: sync.id, type: %(reply)s, data: { synced: true } });
  await new Promise(resolve => setTimeout(resolve, 0));
  results.store = ipc.store.toJSON();
""" % {
		'web_store_write': json.dumps(WEB_STORE_WRITE),
		'backend_store_write': json.dumps(BACKEND_STORE_WRITE),
		'web_store_sync': json.dumps(WEB_STORE_SYNC),
		'reply': json.dumps(REPLY),
	})

	assert results['written'] == [{'key': 'theme', 'value': 'dark'}]
	assert results['volume'] == 7
	assert results['store'] == {'synced': True, 'theme': 'dark', 'volume': 7}


def test_exposed_functions_are_callable_both_ways(run_in_page):
	results = run_in_page("""
  ipc.expose('add', (a, b) => a + b);
  await ipc._receive({ id: 'r4', type: 'exposed add', data: [2, 3] });
  results.added = sentWith('r4');

  const product = ipc.call('mul', 6, 7);
  const request = outbox.find(envelope => envelope.type === 'exposed mul');
  results.request = request.data;
  await ipc._receive({ id: request.id, type: %(reply)s, data: 42 });
  results.product = await product;
""" % {'reply': json.dumps(REPLY)})

	assert results['added'] == {'id': 'r4', 'type': REPLY, 'data': 5}
	assert results['request'] == [6, 7]
	assert results['product'] == 42


def test_binding_is_hidden_and_versions_published(run_in_page):
	results = run_in_page("""
  results.bindingLeft = typeof window.%(binding)s;
  results.versions = window.%(global)s.versions;
""" % {'binding': BINDING_NAME, 'global': GLOBAL_NAME})

	assert results['bindingLeft'] == 'undefined'
	assert results['versions'] == VERSIONS
