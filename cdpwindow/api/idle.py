"""window.idle: заморозка неактивного окна через Page.setWebLifecycleState."""

import logging
from typing import Literal

from cdpwindow.api.cdp import CDPAccess

logger = logging.getLogger(__name__)

IdleState = Literal['active', 'sleeping', 'hibernating']


class IdleApi:
	"""sleep() замораживает страницу, hibernate() дополнительно просит браузер освободить память."""

	def __init__(self, cdp: CDPAccess):
		self.cdp = cdp
		self.state: IdleState = 'active'

	async def sleep(self) -> None:
		await self.cdp.send('Page.setWebLifecycleState', {'state': 'frozen'})
		self.state = 'sleeping'
		logger.debug('💤 Window frozen')

	async def hibernate(self) -> None:
		await self.cdp.send('Page.setWebLifecycleState', {'state': 'frozen'})
		await self.cdp.send('Memory.simulatePressureNotification', {'level': 'critical'}, use_session=False)
		self.state = 'hibernating'
		logger.debug('🛌 Window hibernating')

	async def wake(self) -> None:
		if self.state == 'active':
			return
		await self.cdp.send('Page.setWebLifecycleState', {'state': 'active'})
		self.state = 'active'
		logger.debug('☀️ Window woken up')
