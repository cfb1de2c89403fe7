"""
运行配置

安装器自身的路径、网络参数和可选行为，支持通过 MMINSTALLER_* 环境变量覆盖。
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from mminstaller import APP_NAME
from mminstaller.models.manifest import Side

MODRINTH_API_URL = "https://api.modrinth.com/v2"


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class InstallerSettings:
    """安装器运行配置"""

    install_dir: Path = field(default_factory=Path.cwd)
    manifest_name: str = "config.yaml"
    manifest_file: Optional[Path] = None
    app_folder: str = APP_NAME
    state_file_name: str = "installer-state.json"
    temp_dir_name: str = ".temp"
    log_dir_name: str = "logs"

    # 网络
    request_timeout: float = 10.0
    chunk_size: int = 8192
    max_retries: int = 2
    retry_delay: float = 1.0
    modrinth_api_url: str = MODRINTH_API_URL

    # 行为
    verify_on_disk: bool = True
    side: Optional[Side] = None
    minecraft_dir: Optional[Path] = None

    def __post_init__(self):
        self.install_dir = Path(self.install_dir)
        if self.manifest_file is not None:
            self.manifest_file = Path(self.manifest_file)
        if self.minecraft_dir is not None:
            self.minecraft_dir = Path(self.minecraft_dir)
        if isinstance(self.side, str):
            self.side = Side(self.side)

    @property
    def manifest_path(self) -> Path:
        """显式指定的清单文件优先，否则为安装目录下的 config.yaml"""
        if self.manifest_file is not None:
            return self.manifest_file
        return self.install_dir / self.manifest_name

    @property
    def app_dir(self) -> Path:
        return self.install_dir / self.app_folder

    @property
    def state_path(self) -> Path:
        return self.app_dir / self.state_file_name

    @property
    def temp_dir(self) -> Path:
        return self.app_dir / self.temp_dir_name

    @property
    def log_dir(self) -> Path:
        return self.app_dir / self.log_dir_name

    @property
    def mods_dir(self) -> Path:
        return self.install_dir / "mods"

    @classmethod
    def from_env(cls, **overrides) -> "InstallerSettings":
        """从环境变量构建配置，显式参数优先"""
        values = {}
        if install_dir := os.environ.get("MMINSTALLER_INSTALL_DIR"):
            values["install_dir"] = Path(install_dir)
        if manifest_name := os.environ.get("MMINSTALLER_MANIFEST"):
            values["manifest_name"] = manifest_name
        if timeout := os.environ.get("MMINSTALLER_TIMEOUT"):
            values["request_timeout"] = float(timeout)
        if retries := os.environ.get("MMINSTALLER_MAX_RETRIES"):
            values["max_retries"] = int(retries)
        if api_url := os.environ.get("MMINSTALLER_MODRINTH_API"):
            values["modrinth_api_url"] = api_url.rstrip("/")
        if side := os.environ.get("MMINSTALLER_SIDE"):
            values["side"] = Side(side.lower())
        if minecraft_dir := os.environ.get("MMINSTALLER_MINECRAFT_DIR"):
            values["minecraft_dir"] = Path(minecraft_dir)
        values["verify_on_disk"] = _env_bool("MMINSTALLER_VERIFY_ON_DISK", True)

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
