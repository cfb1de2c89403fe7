"""
安装记录

持久化已安装的加载器、模组和资源，用于断点续装和配置漂移检测。
只持久化记录列表，索引在每次加载后重建。
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import aiofiles
from loguru import logger

from mminstaller.download.verifier import hash_matches
from mminstaller.exceptions import (
    FileOperationError,
    FormatError,
    ValidationError,
)
from mminstaller.models.manifest import (
    ModEntry,
    ModLoader,
    ResourceEntry,
    Source,
    parse_source,
    source_key,
)
from mminstaller.utils import SemVer


@dataclass
class LoaderRecord:
    """已安装的加载器"""

    file_name: str
    url: str
    hash: str

    def matches(self, loader: ModLoader) -> bool:
        return self.url == loader.url and hash_matches(loader.hash, self.hash)

    def to_dict(self) -> Dict[str, Any]:
        return {"fileName": self.file_name, "url": self.url, "hash": self.hash}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoaderRecord":
        return cls(
            file_name=str(data["fileName"]),
            url=str(data["url"]),
            hash=str(data["hash"]).lower(),
        )


@dataclass
class ModRecord:
    """已安装的模组"""

    file_name: str
    source: Source
    hash: str

    @property
    def key(self) -> str:
        return source_key(self.source)

    def matches(self, entry: ModEntry) -> bool:
        return hash_matches(entry.hash, self.hash)

    def to_dict(self) -> Dict[str, Any]:
        return {"fileName": self.file_name, **self.source.to_dict(), "hash": self.hash}

    @classmethod
    def from_dict(cls, data: Dict[str, Any], field_name: str) -> "ModRecord":
        return cls(
            file_name=str(data["fileName"]),
            source=parse_source(data, field_name),
            hash=str(data["hash"]).lower(),
        )


@dataclass
class ResourceRecord:
    """已安装的资源"""

    file_name: str
    source: Source
    hash: str
    target_dir: str
    decompress: bool = False

    @property
    def key(self) -> Tuple[str, str]:
        return source_key(self.source), self.target_dir

    def matches(self, entry: ResourceEntry) -> bool:
        return (
            hash_matches(entry.hash, self.hash)
            and self.decompress == entry.decompress
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fileName": self.file_name,
            **self.source.to_dict(),
            "hash": self.hash,
            "targetDir": self.target_dir,
            "decompress": self.decompress,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], field_name: str) -> "ResourceRecord":
        return cls(
            file_name=str(data["fileName"]),
            source=parse_source(data, field_name),
            hash=str(data["hash"]).lower(),
            target_dir=str(data["targetDir"]),
            decompress=bool(data.get("decompress", False)),
        )


@dataclass
class InstallLedger:
    """安装记录"""

    installer_version: str
    mod_loader: Optional[LoaderRecord] = None
    mods: List[ModRecord] = field(default_factory=list)
    resources: List[ResourceRecord] = field(default_factory=list)

    _mod_index: Dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _resource_index: Dict[Tuple[str, str], int] = field(
        default_factory=dict, init=False, repr=False
    )

    def __post_init__(self):
        self._rebuild_indexes()

    def _rebuild_indexes(self):
        """从记录列表重建索引，重复键以最后一条为准"""
        self._mod_index = {record.key: i for i, record in enumerate(self.mods)}
        self._resource_index = {
            record.key: i for i, record in enumerate(self.resources)
        }

    @classmethod
    def load_or_create(
        cls, path: Union[str, Path], current_version: str
    ) -> "InstallLedger":
        """
        读取安装记录，不存在时创建空记录

        若当前安装器版本更新，记录中的版本号前移到当前版本（只前移，不回退）。

        Raises:
            FileOperationError: 文件无法读取
            FormatError: 文件无法解析
        """
        path = Path(path)
        if not path.exists():
            logger.info(f"[记录] 未找到安装记录，创建新记录 ({path})")
            return cls(installer_version=current_version)

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise FormatError(
                f"安装记录格式错误: {e}", context={"path": str(path)}
            ) from e
        except OSError as e:
            raise FileOperationError(
                f"无法读取安装记录: {path}", context={"error": str(e)}
            ) from e

        ledger = cls.from_dict(data)
        ledger.advance_version(current_version)
        logger.debug(
            f"[记录] 已加载安装记录: {len(ledger.mods)} 个模组, "
            f"{len(ledger.resources)} 个资源"
        )
        return ledger

    @classmethod
    def from_dict(cls, data: Any) -> "InstallLedger":
        if not isinstance(data, dict):
            raise FormatError("安装记录顶层必须是对象")

        try:
            version = str(data["installerVersion"])
            SemVer.parse(version)
            loader_data = data.get("modLoader")
            mod_loader = LoaderRecord.from_dict(loader_data) if loader_data else None
            mods = [
                ModRecord.from_dict(item, f"mods[{i}]")
                for i, item in enumerate(data.get("mods") or [])
            ]
            resources = [
                ResourceRecord.from_dict(item, f"resources[{i}]")
                for i, item in enumerate(data.get("resources") or [])
            ]
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise FormatError(f"安装记录内容无效: {e}") from e

        return cls(
            installer_version=version,
            mod_loader=mod_loader,
            mods=mods,
            resources=resources,
        )

    def advance_version(self, current_version: str) -> bool:
        """版本号只前移；返回是否发生了变化"""
        if SemVer.parse(current_version) > SemVer.parse(self.installer_version):
            logger.info(
                f"[记录] 安装器版本 {self.installer_version} -> {current_version}"
            )
            self.installer_version = current_version
            return True
        return False

    def get_loader(self) -> Optional[LoaderRecord]:
        return self.mod_loader

    def set_loader(self, record: LoaderRecord):
        self.mod_loader = record

    def get_mod(self, entry: ModEntry) -> Optional[ModRecord]:
        """按来源键查找模组记录"""
        index = self._mod_index.get(source_key(entry.source))
        return self.mods[index] if index is not None else None

    def record_mod(self, record: ModRecord):
        """插入或原位替换模组记录"""
        index = self._mod_index.get(record.key)
        if index is None:
            self._mod_index[record.key] = len(self.mods)
            self.mods.append(record)
        else:
            self.mods[index] = record

    def get_resource(self, entry: ResourceEntry) -> Optional[ResourceRecord]:
        """按 (来源键, 目标目录) 查找资源记录"""
        index = self._resource_index.get((source_key(entry.source), entry.target_dir))
        return self.resources[index] if index is not None else None

    def record_resource(self, record: ResourceRecord):
        """插入或原位替换资源记录"""
        index = self._resource_index.get(record.key)
        if index is None:
            self._resource_index[record.key] = len(self.resources)
            self.resources.append(record)
        else:
            self.resources[index] = record

    def to_dict(self) -> Dict[str, Any]:
        return {
            "installerVersion": self.installer_version,
            "modLoader": self.mod_loader.to_dict() if self.mod_loader else None,
            "mods": [record.to_dict() for record in self.mods],
            "resources": [record.to_dict() for record in self.resources],
        }

    async def persist(self, path: Union[str, Path]):
        """
        写入安装记录

        先写临时文件再替换，避免中断时留下半个文件。

        Raises:
            FileOperationError: 写入或替换失败
        """
        path = Path(path)
        tmp_path = path.with_name(path.name + ".tmp")
        content = json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(content)
            os.replace(tmp_path, path)
        except OSError as e:
            raise FileOperationError(
                f"无法写入安装记录: {path}", context={"error": str(e)}
            ) from e
