"""
启动器配置

向官方启动器的 launcher_profiles.json 添加整合包配置。
写入前旧文件会被重命名为 .json.bak / .json.bak1 / ... 备份。
"""

import json
import os
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from mminstaller.exceptions import FileOperationError, LauncherError
from mminstaller.models.manifest import Profile
from mminstaller.settings import InstallerSettings

PROFILES_FILE_NAME = "launcher_profiles.json"


def default_minecraft_dir() -> Path:
    """当前平台的 .minecraft 目录"""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if not appdata:
            raise LauncherError("未设置 APPDATA 环境变量")
        return Path(appdata) / ".minecraft"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "minecraft"
    return Path.home() / ".minecraft"


def default_profiles_path(settings: InstallerSettings) -> Path:
    minecraft_dir = settings.minecraft_dir or default_minecraft_dir()
    return minecraft_dir / PROFILES_FILE_NAME


def _timestamp() -> str:
    """精确到毫秒的 UTC 时间"""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def build_profile(profile: Profile, game_dir: Path) -> Dict[str, Any]:
    now = _timestamp()
    data: Dict[str, Any] = {
        "created": now,
        "gameDir": str(game_dir),
        "icon": profile.icon,
        "lastUsed": now,
        "lastVersionId": profile.version,
        "name": profile.name,
        "type": "custom",
    }
    if profile.jvm_args:
        data["javaArgs"] = profile.jvm_args
    return data


def next_backup_path(profiles_path: Path) -> Path:
    """第一个不存在的备份路径：.json.bak, .json.bak1, .json.bak2, ..."""
    backup_path = profiles_path.with_name(profiles_path.name + ".bak")
    index = 1
    while backup_path.exists():
        backup_path = profiles_path.with_name(f"{profiles_path.name}.bak{index}")
        index += 1
    return backup_path


def add_launcher_profile(
    profile: Profile,
    game_dir: Path,
    profiles_path: Optional[Path] = None,
    settings: Optional[InstallerSettings] = None,
) -> bool:
    """
    添加启动器配置

    Args:
        profile: 清单中的配置信息
        game_dir: 游戏目录（安装目录）
        profiles_path: launcher_profiles.json 路径，默认按平台推导

    Returns:
        bool: 是否新增了配置（同名配置已存在时返回 False）

    Raises:
        LauncherError: 配置文件不存在或格式错误
        FileOperationError: 备份或写入失败
    """
    if profiles_path is None:
        profiles_path = default_profiles_path(settings or InstallerSettings())
    profiles_path = Path(profiles_path)

    logger.info("[配置] 正在添加启动器配置...")
    if not profiles_path.exists():
        raise LauncherError(
            "未找到启动器配置文件", context={"path": str(profiles_path)}
        )

    try:
        with open(profiles_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise LauncherError(
            f"无法读取 {PROFILES_FILE_NAME}: {e}", context={"path": str(profiles_path)}
        ) from e

    profiles = data.get("profiles") if isinstance(data, dict) else None
    if not isinstance(profiles, dict):
        raise LauncherError(f"{PROFILES_FILE_NAME} 缺少 profiles 字段")

    for existing in profiles.values():
        if isinstance(existing, dict) and existing.get("name") == profile.name:
            logger.info(f"[跳过] 启动器配置 '{profile.name}' 已存在")
            return False

    profile_id = uuid.uuid4().hex
    profiles[profile_id] = build_profile(profile, game_dir)

    # 新内容完整写入临时文件后才轮换，失败时原文件保持不变
    tmp_path = profiles_path.with_name(profiles_path.name + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise FileOperationError(
            f"写入 {PROFILES_FILE_NAME} 失败", context={"error": str(e)}
        ) from e

    backup_path = next_backup_path(profiles_path)
    try:
        os.replace(profiles_path, backup_path)
        logger.info(f"[备份] {PROFILES_FILE_NAME} -> {backup_path.name}")
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise FileOperationError(
            f"备份 {PROFILES_FILE_NAME} 失败", context={"error": str(e)}
        ) from e

    try:
        os.replace(tmp_path, profiles_path)
    except OSError as e:
        os.replace(backup_path, profiles_path)
        tmp_path.unlink(missing_ok=True)
        raise FileOperationError(
            f"写入 {PROFILES_FILE_NAME} 失败，已恢复原文件", context={"error": str(e)}
        ) from e

    logger.success(f"已添加启动器配置 '{profile.name}'")
    return True
