"""
API 数据模型

定义仓库元数据接口返回的版本信息、文件信息。
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict


@dataclass
class FileInfo:
    """文件信息"""

    url: str
    filename: str
    size: int = 0
    primary: bool = False
    hashes: Optional[Dict[str, str]] = None


@dataclass
class VersionInfo:
    """
    仓库版本信息。
    """

    id: str
    project_id: str
    name: str
    version_number: str
    files: List[FileInfo] = field(default_factory=list)

    @classmethod
    def from_modrinth(cls, data: dict) -> "VersionInfo":
        """
        将 Modrinth API 返回的版本信息转换为 VersionInfo 对象。
        """
        files = [
            FileInfo(
                url=file["url"],
                filename=file.get("filename", ""),
                size=file.get("size", 0),
                primary=bool(file.get("primary", False)),
                hashes=file.get("hashes"),
            )
            for file in data.get("files", [])
        ]

        return cls(
            id=data.get("id", ""),
            project_id=data.get("project_id", ""),
            name=data.get("name", ""),
            version_number=data.get("version_number", ""),
            files=files,
        )

    def primary_file(self) -> Optional[FileInfo]:
        """优先返回标记为 primary 的文件，否则返回第一个"""
        if not self.files:
            return None

        for file in self.files:
            if file.primary:
                return file

        return self.files[0]
