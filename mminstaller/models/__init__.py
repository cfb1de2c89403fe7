"""
mminstaller 数据模型包

包含安装清单模型和 API 模型定义。
"""

from mminstaller.models.manifest import (
    LATEST_SCHEMA_VERSION,
    Side,
    SourceKind,
    DirectSource,
    ModrinthSource,
    CurseForgeSource,
    Source,
    source_key,
    parse_source,
    Profile,
    ModLoader,
    ModEntry,
    ResourceEntry,
    Manifest,
)
from mminstaller.models.api import (
    FileInfo,
    VersionInfo,
)

__all__ = [
    # 清单模型
    "LATEST_SCHEMA_VERSION",
    "Side",
    "SourceKind",
    "DirectSource",
    "ModrinthSource",
    "CurseForgeSource",
    "Source",
    "source_key",
    "parse_source",
    "Profile",
    "ModLoader",
    "ModEntry",
    "ResourceEntry",
    "Manifest",
    # API 模型
    "FileInfo",
    "VersionInfo",
]
