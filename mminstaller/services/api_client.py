"""
API 客户端

Modrinth 元数据接口客户端，用于把仓库引用解析为具体的下载地址。
"""

import asyncio
from typing import Optional

import aiohttp

from mminstaller import APP_NAME, __version__
from mminstaller.models import VersionInfo
from mminstaller.exceptions import APIError, NotFoundError


MODRINTH_BASE_URL = "https://api.modrinth.com/v2"
USER_AGENT = f"{APP_NAME}/{__version__}"


class ModrinthClient:
    """Modrinth API 客户端"""

    def __init__(
        self,
        base_url: str = MODRINTH_BASE_URL,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        self._owned_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": USER_AGENT},
                timeout=aiohttp.ClientTimeout(
                    total=None, connect=self.timeout, sock_read=self.timeout
                ),
            )
            self._owned_session = True
        return self._session

    async def _request(self, endpoint: str, params: Optional[dict] = None) -> dict:
        """发送 API 请求"""
        url = f"{self.base_url}{endpoint}"
        try:
            async with self.session.get(url, params=params) as response:
                if response.status == 200:
                    return await response.json()
                elif response.status == 404:
                    raise NotFoundError(
                        f"资源不存在: {endpoint}",
                        context={"url": url},
                        status=response.status,
                    )
                else:
                    raise APIError(
                        f"API 请求失败 (状态码: {response.status})",
                        context={"url": url},
                        status=response.status,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise APIError(f"API 请求失败: {e}", context={"url": url}) from e

    async def get_version(self, version_id: str) -> VersionInfo:
        """获取版本信息"""
        data = await self._request(f"/version/{version_id}")
        return VersionInfo.from_modrinth(data)

    async def close(self):
        """关闭客户端"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()
