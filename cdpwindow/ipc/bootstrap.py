"""Скрипт, который внедряется в страницу: window.CdpWindow.

Реализует ту же половину протокола IPC, что и IPCBridge, только в JS:
очередь исходящих сообщений (_get() забирает их по одному), синхронная
точка входа _receive() для сообщений из Python и зеркальное хранилище.
Если в контексте есть CDP binding, исходящие сообщения уходят через него
сразу, без очереди.
"""

import json
from typing import Any

from cdpwindow.ipc.models import BACKEND_STORE_WRITE, EXPOSED_PREFIX, PONG, REPLY, WEB_STORE_SYNC, WEB_STORE_WRITE
from cdpwindow.ipc.store import RESERVED_KEYS

GLOBAL_NAME = 'CdpWindow'
BINDING_NAME = '__cdpWindowSend'

# Выражение, которое насос доставки вычисляет в цикле
POLL_EXPRESSION = f'window.{GLOBAL_NAME}.ipc._get()'

_BOOTSTRAP_TEMPLATE = """(() => {
if (window.__GLOBAL__) return;

const binding = typeof window.__BINDING__ === 'function' ? window.__BINDING__ : null;
try { delete window.__BINDING__; } catch { }

const pendingReplies = {}, listeners = {}, queue = [];
let queueWaiter = null, idCounter = 0;
const idSalt = Math.random().toString(36).slice(2) + Date.now().toString(36);
const newId = () => idSalt + '-' + (++idCounter).toString(36);
const isDefined = value => value !== undefined && value !== null;

const push = envelope => {
  if (binding) return binding(JSON.stringify(envelope));

  queue.push(envelope);
  if (queueWaiter) {
    queueWaiter();
    queueWaiter = null;
  }
};

const ipc = {
  send: async (type, data, id = undefined) => {
    const isReply = id !== undefined;
    if (!isReply) id = newId();

    push({ id, type, data });
    if (isReply) return;

    const reply = await new Promise(res => { pendingReplies[id] = res; });
    return reply.data;
  },

  on: (type, cb) => {
    if (!listeners[type]) listeners[type] = [];
    listeners[type].push(cb);
  },

  removeListener: (type, cb) => {
    if (!listeners[type]) return false;
    const index = listeners[type].indexOf(cb);
    if (index === -1) return false;

    listeners[type].splice(index, 1);
    if (listeners[type].length === 0) delete listeners[type];
    return true;
  },

  expose: (key, fn) => {
    if (typeof key === 'object' && fn === undefined) {
      for (const name of Object.keys(key)) if (typeof key[name] !== 'function') throw new TypeError('Invalid arguments (expected string, function)');
      for (const name of Object.keys(key)) ipc.expose(name, key[name]);
      return;
    }
    if (typeof key !== 'string' || typeof fn !== 'function') throw new TypeError('Invalid arguments (expected string, function)');

    ipc.unexpose(key);
    const listener = args => fn(...(Array.isArray(args) ? args : (isDefined(args) ? [args] : [])));
    exposed[key] = listener;
    ipc.on(__EXPOSED_PREFIX__ + key, listener);
  },

  unexpose: key => {
    if (!exposed[key]) return false;
    const listener = exposed[key];
    delete exposed[key];
    return ipc.removeListener(__EXPOSED_PREFIX__ + key, listener);
  },

  call: (key, ...args) => ipc.send(__EXPOSED_PREFIX__ + key, args),

  _get: async () => {
    if (queue.length === 0) await new Promise(res => { queueWaiter = res; });
    return JSON.stringify(queue.shift());
  },

  _receive: async msg => {
    const { id, type, data } = msg;

    if (isDefined(id) && pendingReplies[id]) {
      const resolve = pendingReplies[id];
      delete pendingReplies[id];
      resolve({ type, data });
      return;
    }

    if (type === __REPLY__ || type === __PONG__) return;

    let reply;
    for (const cb of (listeners[type] || []).slice()) {
      let ret;
      try {
        ret = await cb(data);
      } catch (e) {
        console.error('IPC listener for ' + type + ' failed', e);
        continue;
      }
      if (!isDefined(reply)) reply = ret;
    }

    if (!isDefined(id)) return;
    if (isDefined(reply)) return ipc.send(__REPLY__, reply, id);
    ipc.send(__PONG__, null, id);
  }
};
const exposed = {};

const reserved = new Set(__RESERVED_KEYS__);
const checkKey = key => {
  if (reserved.has(key)) throw new Error('Cannot overwrite IPC built-in ' + JSON.stringify(key));
};

let storeData = {};
const updateBackend = (key, value) => ipc.send(__WEB_STORE_WRITE__, { key, value });

ipc.store = {
  get: key => storeData[key],
  set: (key, value) => {
    checkKey(key);
    if (value === undefined) delete storeData[key];
      else storeData[key] = value;

    updateBackend(key, value);
    return value;
  },
  delete: key => {
    checkKey(key);
    delete storeData[key];

    updateBackend(key, undefined);
    return true;
  },
  keys: () => Object.keys(storeData),
  toJSON: () => ({ ...storeData })
};

ipc.on(__BACKEND_STORE_WRITE__, ({ key, value }) => {
  if (value === undefined) delete storeData[key];
    else storeData[key] = value;
});

window.__GLOBAL__ = {
  versions: __VERSIONS__,
  ipc
};

ipc.send(__WEB_STORE_SYNC__).then(snapshot => {
  if (snapshot && typeof snapshot === 'object') storeData = { ...snapshot, ...storeData };
});
})();"""


def render_bootstrap(versions: dict[str, Any] | None = None) -> str:
	"""Собрать скрипт window.CdpWindow с подставленными версиями."""
	substitutions = {
		'__GLOBAL__': GLOBAL_NAME,
		'__BINDING__': BINDING_NAME,
		'__VERSIONS__': json.dumps(versions or {}),
		'__RESERVED_KEYS__': json.dumps(sorted(RESERVED_KEYS)),
		'__EXPOSED_PREFIX__': json.dumps(EXPOSED_PREFIX),
		'__REPLY__': json.dumps(REPLY),
		'__PONG__': json.dumps(PONG),
		'__WEB_STORE_WRITE__': json.dumps(WEB_STORE_WRITE),
		'__BACKEND_STORE_WRITE__': json.dumps(BACKEND_STORE_WRITE),
		'__WEB_STORE_SYNC__': json.dumps(WEB_STORE_SYNC),
	}
	source = _BOOTSTRAP_TEMPLATE
	for placeholder, value in substitutions.items():
		source = source.replace(placeholder, value)
	return source


def receive_expression(envelope_json: str) -> str:
	"""Выражение, доставляющее конверт в страницу."""
	return f'window.{GLOBAL_NAME}.ipc._receive({envelope_json})'
