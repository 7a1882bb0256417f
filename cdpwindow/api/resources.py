"""window.resources: ресурсы, загруженные страницей."""

import base64
from typing import Any

from cdpwindow.api.cdp import CDPAccess


def _flatten_frame_tree(frame_tree: dict[str, Any]) -> list[dict[str, Any]]:
	frame_id = (frame_tree.get('frame') or {}).get('id')
	resources = [{**resource, 'frameId': frame_id} for resource in frame_tree.get('resources', [])]
	for child_tree in frame_tree.get('childFrames', []):
		resources.extend(_flatten_frame_tree(child_tree))
	return resources


class ResourcesApi:
	def __init__(self, cdp: CDPAccess):
		self.cdp = cdp

	async def _resource_tree(self) -> dict[str, Any]:
		reply = await self.cdp.send('Page.getResourceTree')
		return reply.get('frameTree', {})

	async def get_content(self, url: str, frame_id: str | None = None) -> str | bytes:
		"""Содержимое ресурса: str для текста, bytes для двоичных данных."""
		if frame_id is None:
			frame_id = ((await self._resource_tree()).get('frame') or {}).get('id')
		reply = await self.cdp.send('Page.getResourceContent', {'frameId': frame_id, 'url': url})
		content = reply.get('content', '')
		if reply.get('base64Encoded'):
			return base64.b64decode(content)
		return content

	async def list(self) -> list[dict[str, Any]]:
		"""Все ресурсы всех фреймов: url, type, mimeType, frameId."""
		return _flatten_frame_tree(await self._resource_tree())
