"""
来源解析服务

把清单中的来源描述（直接地址或仓库引用）映射为具体的下载 URL。
"""

from loguru import logger

from mminstaller.models import (
    CurseForgeSource,
    DirectSource,
    ModrinthSource,
    Source,
)
from mminstaller.services.api_client import ModrinthClient
from mminstaller.exceptions import IntegrityError, NoFilesError


class SourceResolver:
    """来源解析器"""

    def __init__(self, client: ModrinthClient):
        self.client = client

    async def resolve(self, source: Source) -> str:
        """
        解析来源为下载地址

        Args:
            source: 来源描述

        Returns:
            具体的下载 URL

        Raises:
            NotFoundError: 仓库中不存在该版本
            IntegrityError: 返回的版本不属于请求的项目
            NoFilesError: 版本没有任何文件
        """
        if isinstance(source, DirectSource):
            return source.url
        elif isinstance(source, ModrinthSource):
            return await self._resolve_modrinth(source)
        elif isinstance(source, CurseForgeSource):
            return source.download_url
        raise TypeError(f"未知的来源类型: {type(source).__name__}")

    async def _resolve_modrinth(self, source: ModrinthSource) -> str:
        version = await self.client.get_version(source.file_id)

        if version.project_id != source.project_id:
            raise IntegrityError(
                f"项目 ID 不匹配: 期望 {source.project_id}，实际 {version.project_id}",
                context={
                    "expected": source.project_id,
                    "actual": version.project_id,
                    "version": source.file_id,
                },
            )

        if not version.files:
            raise NoFilesError(
                f"项目 {source.project_id} 的版本 {source.file_id} 没有任何文件",
                context={"project": source.project_id, "version": source.file_id},
            )

        if len(version.files) > 1:
            logger.warning(
                f"[解析] 版本 {source.file_id} 包含 {len(version.files)} 个文件，"
                f"将选择 primary 文件或第一个文件"
            )

        file_info = version.primary_file()
        logger.debug(f"[解析] {source.project_id}:{source.file_id} -> {file_info.url}")
        return file_info.url
