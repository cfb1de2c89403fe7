"""
mminstaller 服务层

包含仓库 API 客户端和来源解析。
"""

from mminstaller.services.api_client import ModrinthClient
from mminstaller.services.source_resolver import SourceResolver

__all__ = [
    "ModrinthClient",
    "SourceResolver",
]
