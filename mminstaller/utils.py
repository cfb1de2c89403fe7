import json
import re
from dataclasses import dataclass
from functools import total_ordering
from pathlib import Path
from typing import Any, Tuple, Union

import toml
import yaml

from mminstaller.exceptions import FileOperationError, FormatError

SEMVER_RE = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)"
    r"\.(?P<minor>0|[1-9]\d*)"
    r"\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


@total_ordering
@dataclass(frozen=True)
class SemVer:
    """语义化版本号（忽略 build 元数据参与比较）"""

    major: int
    minor: int
    patch: int
    prerelease: Tuple[str, ...] = ()
    build: Tuple[str, ...] = ()

    @classmethod
    def parse(cls, value: str) -> "SemVer":
        match = SEMVER_RE.match(str(value).strip())
        if not match:
            raise ValueError(f"无效的语义化版本: {value!r}")
        prerelease = match.group("prerelease")
        build = match.group("build")
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(match.group("patch")),
            prerelease=tuple(prerelease.split(".")) if prerelease else (),
            build=tuple(build.split(".")) if build else (),
        )

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        prerelease = f"-{'.'.join(self.prerelease)}" if self.prerelease else ""
        build = f"+{'.'.join(self.build)}" if self.build else ""
        return f"{base}{prerelease}{build}"

    def _cmp_key(self) -> tuple:
        # 数字标识符优先级低于字母标识符；正式版高于任何预发布版
        prerelease = tuple(
            (0, int(ident)) if ident.isdigit() else (1, ident)
            for ident in self.prerelease
        )
        return (self.major, self.minor, self.patch, not self.prerelease, prerelease)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._cmp_key() == other._cmp_key()

    def __lt__(self, other: "SemVer") -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._cmp_key() < other._cmp_key()

    def __hash__(self) -> int:
        return hash(self._cmp_key())


def load_document(path: Union[str, Path]) -> Any:
    """
    按后缀读取结构化文档 (YAML / JSON / TOML)

    Raises:
        FileOperationError: 文件不可读
        FormatError: 内容无法解析或后缀不受支持
    """
    path = Path(path)
    suffix = path.suffix.lower()

    try:
        raw = path.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise FileOperationError(
            f"无法读取文件: {path}", context={"path": str(path), "error": str(e)}
        ) from e
    except UnicodeDecodeError as e:
        raise FormatError(
            f"文件不是有效的 UTF-8 文本: {path}",
            context={"path": str(path), "error": str(e)},
        ) from e

    try:
        if suffix in (".yaml", ".yml"):
            return yaml.safe_load(raw)
        elif suffix == ".json":
            return json.loads(raw)
        elif suffix == ".toml":
            return toml.loads(raw)
    except (yaml.YAMLError, json.JSONDecodeError, toml.TomlDecodeError) as e:
        raise FormatError(
            f"无法解析文件: {path}", context={"path": str(path), "error": str(e)}
        ) from e

    raise FormatError(f"不支持的文件格式: {suffix}", context={"path": str(path)})
