"""
安装清单模型

定义整合包清单（加载器、模组、资源）及其校验规则。
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Union

from mminstaller.exceptions import FormatError, ValidationError
from mminstaller.utils import SemVer, load_document

LATEST_SCHEMA_VERSION = 2

CURSEFORGE_DOWNLOAD_URL = (
    "https://www.curseforge.com/api/v1/mods/{project_id}/files/{file_id}/download"
)

_SHA1_RE = re.compile(r"^[0-9a-fA-F]{40}$")


class Side(Enum):
    """模组适用端"""

    BOTH = "both"
    CLIENT = "client"
    SERVER = "server"


class SourceKind(Enum):
    """来源类型"""

    DIRECT = "direct"
    MODRINTH = "modrinth"
    CURSEFORGE = "curseforge"


@dataclass(frozen=True)
class DirectSource:
    """直接下载地址"""

    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": SourceKind.DIRECT.value, "url": self.url}


@dataclass(frozen=True)
class ModrinthSource:
    """Modrinth 仓库引用（项目 ID + 版本 ID）"""

    project_id: str
    file_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": SourceKind.MODRINTH.value,
            "projectId": self.project_id,
            "fileId": self.file_id,
        }


@dataclass(frozen=True)
class CurseForgeSource:
    """CurseForge 仓库引用（项目 ID + 文件 ID）"""

    project_id: int
    file_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": SourceKind.CURSEFORGE.value,
            "projectId": self.project_id,
            "fileId": self.file_id,
        }

    @property
    def download_url(self) -> str:
        return CURSEFORGE_DOWNLOAD_URL.format(
            project_id=self.project_id, file_id=self.file_id
        )


Source = Union[DirectSource, ModrinthSource, CurseForgeSource]


def source_key(source: Source) -> str:
    """来源的规范键，用于安装记录索引"""
    if isinstance(source, DirectSource):
        return f"direct:{source.url}"
    elif isinstance(source, ModrinthSource):
        return f"repo:{source.project_id}:{source.file_id}"
    elif isinstance(source, CurseForgeSource):
        return f"curseforge:{source.project_id}:{source.file_id}"
    raise TypeError(f"未知的来源类型: {type(source).__name__}")


def parse_source(data: Dict[str, Any], field_name: str) -> Source:
    """从扁平化的条目字典中解析来源"""
    kind = data.get("type")
    try:
        kind = SourceKind(str(kind).lower())
    except ValueError:
        raise ValidationError(
            f"{field_name}.type", f"不支持的来源类型: {kind!r}"
        ) from None

    if kind == SourceKind.DIRECT:
        url = _require_str(data, "url", field_name)
        if not url.lower().startswith(("http://", "https://")):
            raise ValidationError(f"{field_name}.url", "必须是 http(s) 地址")
        return DirectSource(url=url)

    if kind == SourceKind.MODRINTH:
        project_id = _require_str(data, "projectId", field_name)
        file_id = data.get("fileId", data.get("versionId"))
        if not isinstance(file_id, str) or not file_id.strip():
            raise ValidationError(f"{field_name}.fileId", "不能为空")
        return ModrinthSource(project_id=project_id, file_id=file_id.strip())

    project_id = data.get("projectId")
    file_id = data.get("fileId")
    for key, value in (("projectId", project_id), ("fileId", file_id)):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(f"{field_name}.{key}", "必须是正整数")
    return CurseForgeSource(project_id=project_id, file_id=file_id)


def _require_str(data: Dict[str, Any], key: str, field_name: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name}.{key}", "不能为空")
    return value.strip()


def _require_hash(data: Dict[str, Any], field_name: str) -> str:
    value = _require_str(data, "hash", field_name)
    if not _SHA1_RE.match(value):
        raise ValidationError(f"{field_name}.hash", "必须是 40 位十六进制 SHA-1")
    return value.lower()


def _parse_side(data: Dict[str, Any], field_name: str) -> Side:
    value = data.get("side", Side.BOTH.value)
    try:
        return Side(str(value).lower())
    except ValueError:
        raise ValidationError(f"{field_name}.side", f"无效的值: {value!r}") from None


def validate_relative_dir(value: str, field_name: str) -> str:
    """
    校验相对目录，防止路径注入

    拒绝绝对路径、盘符、'..' 片段、控制字符以及包含 '\\' 或 ':' 的片段。
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field_name, "不能为空")
    if "\\" in value or ":" in value:
        raise ValidationError(field_name, "包含非法字符")
    if any(ord(ch) < 32 or ord(ch) == 127 for ch in value):
        raise ValidationError(field_name, "包含控制字符")
    path = PurePosixPath(value)
    if path.is_absolute():
        raise ValidationError(field_name, "必须是相对路径")
    for part in path.parts:
        if part == "..":
            raise ValidationError(field_name, "不能包含 '..' 片段")
    return value


@dataclass
class Profile:
    """启动器配置文件信息"""

    name: str
    icon: str
    version: str
    jvm_args: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Profile":
        if not isinstance(data, dict):
            raise ValidationError("profile", "必须是映射")
        name = data.get("name")
        version = data.get("version")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("profile.name", "不能为空")
        if not isinstance(version, str) or not version.strip():
            raise ValidationError("profile.version", "不能为空")
        jvm_args = data.get("jvmArgs")
        return cls(
            name=name,
            icon=str(data.get("icon", "")),
            version=version,
            jvm_args=str(jvm_args) if jvm_args is not None else None,
        )


@dataclass
class ModLoader:
    """模组加载器（安装程序）"""

    name: str
    url: str
    hash: str
    auto_open: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModLoader":
        if not isinstance(data, dict):
            raise ValidationError("modLoader", "必须是映射")
        url = _require_str(data, "url", "modLoader")
        if not url.lower().startswith(("http://", "https://")):
            raise ValidationError("modLoader.url", "必须是 http(s) 地址")
        return cls(
            name=_require_str(data, "name", "modLoader"),
            url=url,
            hash=_require_hash(data, "modLoader"),
            auto_open=bool(data.get("autoOpen", False)),
        )


@dataclass
class ModEntry:
    """模组条目"""

    name: str
    source: Source
    hash: str
    side: Side = Side.BOTH

    @classmethod
    def from_dict(cls, data: Dict[str, Any], field_name: str) -> "ModEntry":
        if not isinstance(data, dict):
            raise ValidationError(field_name, "必须是映射")
        return cls(
            name=_require_str(data, "name", field_name),
            source=parse_source(data, field_name),
            hash=_require_hash(data, field_name),
            side=_parse_side(data, field_name),
        )


@dataclass
class ResourceEntry:
    """资源条目（配置、资源包、光影等）"""

    name: str
    source: Source
    hash: str
    target_dir: str
    decompress: bool = False
    side: Side = Side.BOTH

    @classmethod
    def from_dict(cls, data: Dict[str, Any], field_name: str) -> "ResourceEntry":
        if not isinstance(data, dict):
            raise ValidationError(field_name, "必须是映射")
        return cls(
            name=_require_str(data, "name", field_name),
            source=parse_source(data, field_name),
            hash=_require_hash(data, field_name),
            target_dir=validate_relative_dir(
                data.get("targetDir"), f"{field_name}.targetDir"
            ),
            decompress=bool(data.get("decompress", False)),
            side=_parse_side(data, field_name),
        )


@dataclass
class Manifest:
    """整合包安装清单"""

    schema_version: int
    pack_version: str
    profile: Profile
    mod_loader: ModLoader
    mods: List[ModEntry] = field(default_factory=list)
    resources: List[ResourceEntry] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "Manifest":
        """
        从字典构建清单并完整校验

        所有条目都会被检查；存在多个错误时抛出第一个，
        其余错误记录在异常上下文中。

        Raises:
            FormatError: 顶层不是映射
            ValidationError: 违反任一约束
        """
        if not isinstance(data, dict):
            raise FormatError("清单顶层必须是映射")

        errors: List[ValidationError] = []

        def check(func, *args):
            try:
                return func(*args)
            except ValidationError as e:
                errors.append(e)
                return None

        schema_version = data.get("schemaVersion")
        if isinstance(schema_version, bool) or not isinstance(schema_version, int):
            errors.append(ValidationError("schemaVersion", "必须是整数"))
        elif schema_version > LATEST_SCHEMA_VERSION:
            errors.append(
                ValidationError(
                    "schemaVersion",
                    f"不支持的版本 {schema_version}（最高支持 {LATEST_SCHEMA_VERSION}）",
                )
            )

        pack_version = data.get("packVersion")
        check(_check_pack_version, pack_version)

        profile = check(Profile.from_dict, data.get("profile"))
        mod_loader = check(ModLoader.from_dict, data.get("modLoader", data.get("loader")))

        raw_mods = data.get("mods") or []
        raw_resources = data.get("resources") or []
        if not isinstance(raw_mods, list):
            errors.append(ValidationError("mods", "必须是列表"))
            raw_mods = []
        if not isinstance(raw_resources, list):
            errors.append(ValidationError("resources", "必须是列表"))
            raw_resources = []

        mods = [
            check(ModEntry.from_dict, item, f"mods[{i}]")
            for i, item in enumerate(raw_mods)
        ]
        resources = [
            check(ResourceEntry.from_dict, item, f"resources[{i}]")
            for i, item in enumerate(raw_resources)
        ]

        if errors:
            first = errors[0]
            first.context["errors"] = [str(e) for e in errors]
            raise first

        return cls(
            schema_version=schema_version,
            pack_version=str(pack_version).strip(),
            profile=profile,
            mod_loader=mod_loader,
            mods=mods,
            resources=resources,
        )

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Manifest":
        """从文件读取清单（YAML / JSON / TOML）"""
        return cls.from_dict(load_document(path))


def _check_pack_version(value: Any) -> None:
    if not isinstance(value, str):
        raise ValidationError("packVersion", "必须是语义化版本字符串")
    try:
        SemVer.parse(value)
    except ValueError:
        raise ValidationError("packVersion", f"无效的语义化版本: {value!r}") from None
