"""window.script_cache: кэш компиляции скриптов страницы (V8 code cache).

build() просит браузер произвести кэш для всех <script src> страницы и
перезагружает её, чтобы скрипты скомпилировались; результат сохраняется
в JSON-файл в каталоге данных. load() передаёт сохранённый кэш браузеру
до следующей загрузки.
"""

import asyncio
import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import anyio

from cdpwindow.api.cdp import CDPAccess
from cdpwindow.api.page import PageApi
from cdpwindow.exceptions import RemoteEvaluationError
from cdpwindow.session.connection import ProtocolMessage

logger = logging.getLogger(__name__)

SCRIPT_URLS_EXPRESSION = "[...document.querySelectorAll('script[src]')].map(script => script.src)"


class ScriptCacheApi:
	def __init__(self, cdp: CDPAccess, page: PageApi, cache_dir: Path, url: str):
		self.cdp = cdp
		self.page = page
		self.cache_dir = Path(cache_dir)
		self.url = url

	@property
	def path(self) -> Path:
		url_hash = hashlib.sha256(self.url.encode()).hexdigest()[:16]
		return self.cache_dir / f'{url_hash}.json'

	async def exists(self) -> bool:
		return await anyio.Path(self.path).exists()

	async def build(self, timeout: float = 30.0) -> int:
		"""Собрать и сохранить кэш. Возвращает число закэшированных скриптов."""
		script_urls = await self.page.eval(SCRIPT_URLS_EXPRESSION)
		if isinstance(script_urls, RemoteEvaluationError) or not script_urls:
			logger.debug(f'No external scripts to cache on {self.url}')
			return 0

		expected_urls = set(script_urls)
		produced: dict[str, str] = {}
		all_produced = asyncio.Event()

		def on_cache_produced(message: ProtocolMessage) -> None:
			produced_url = message.params.get('url')
			if produced_url in expected_urls:
				produced[produced_url] = message.params.get('data', '')
				if len(produced) == len(expected_urls):
					all_produced.set()

		unhook = self.cdp.on('Page.compilationCacheProduced', on_cache_produced)
		try:
			await self.cdp.send('Page.produceCompilationCache', {'scripts': [{'url': url, 'eager': True} for url in expected_urls]})
			await self.page.reload()
			try:
				await asyncio.wait_for(all_produced.wait(), timeout)
			except TimeoutError:
				logger.warning(f'⚠️ Compilation cache produced for {len(produced)}/{len(expected_urls)} scripts within {timeout}s')
		finally:
			unhook()

		await self._save(produced)
		logger.debug(f'💾 Saved compilation cache for {len(produced)} script(s) to {self.path}')
		return len(produced)

	async def load(self) -> int:
		"""Передать сохранённый кэш браузеру. Возвращает число загруженных скриптов."""
		if not await self.exists():
			return 0

		cached_scripts: dict[str, Any] = json.loads(await anyio.Path(self.path).read_text())
		for url, data in cached_scripts.items():
			await self.cdp.send('Page.addCompilationCache', {'url': url, 'data': data})
		logger.debug(f'Loaded compilation cache for {len(cached_scripts)} script(s)')
		return len(cached_scripts)

	async def _save(self, cached_scripts: dict[str, str]) -> None:
		await anyio.Path(self.cache_dir).mkdir(parents=True, exist_ok=True)

		# Записать атомарно
		temporary_path = anyio.Path(self.path.with_suffix('.json.tmp'))
		await temporary_path.write_text(json.dumps(cached_scripts))
		await temporary_path.replace(self.path)
