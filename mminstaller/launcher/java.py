"""
Java 查找与加载器启动
"""

import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from mminstaller.exceptions import LauncherError

# Microsoft Store 版启动器自带的运行时目录
STORE_RUNTIME_DIR = Path(
    "Packages", "Microsoft.4297127D64EC6_8wekyb3d8bbwe", "LocalCache", "Local", "runtime"
)


def _java_binary(runtime: Path) -> Path:
    if sys.platform == "win32":
        return runtime / "bin" / "javaw.exe"
    return runtime / "bin" / "java"


def search_runtime_dir(runtime_dir: Path) -> Optional[Path]:
    """
    在运行时缓存目录中查找 Java

    java-runtime-* 优先于其他目录（如 jre-legacy），同类中按名称倒序。
    """
    runtime_dir = Path(runtime_dir)
    if not runtime_dir.is_dir():
        return None

    runtimes = [p for p in runtime_dir.iterdir() if p.is_dir()]
    newer = sorted(
        (p for p in runtimes if p.name.startswith("java-runtime-")),
        key=lambda p: p.name,
        reverse=True,
    )
    older = sorted(
        (p for p in runtimes if not p.name.startswith("java-runtime-")),
        key=lambda p: p.name,
        reverse=True,
    )

    for runtime in newer + older:
        java = _java_binary(runtime)
        if java.exists():
            return java
    return None


def find_java() -> Optional[Path]:
    """先查 PATH，Windows 下再查启动器自带的运行时"""
    logger.debug("[Java] 正在查找系统 Java...")
    system_java = shutil.which("java")
    if system_java:
        return Path(system_java)

    if sys.platform == "win32":
        logger.debug("[Java] 正在查找启动器自带的 Java...")
        local_appdata = os.environ.get("LOCALAPPDATA")
        if not local_appdata:
            logger.warning("[Java] 未设置 LOCALAPPDATA 环境变量")
            return None
        return search_runtime_dir(Path(local_appdata) / STORE_RUNTIME_DIR)

    return None


def launch_jar(jar_path: Path, cwd: Path, java: Optional[Path] = None) -> subprocess.Popen:
    """
    以独立进程运行 java -jar，丢弃标准输出

    Raises:
        LauncherError: 找不到 Java 或进程启动失败
    """
    java = java or find_java()
    if java is None:
        raise LauncherError("未找到 Java 可执行文件")
    logger.info(f"[Java] 使用 {java}")

    kwargs = {}
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW
    else:
        kwargs["start_new_session"] = True

    try:
        return subprocess.Popen(
            [str(java), "-jar", str(jar_path)],
            cwd=str(cwd),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            **kwargs,
        )
    except OSError as e:
        raise LauncherError(
            f"无法启动 {jar_path.name}: {e}", context={"java": str(java)}
        ) from e
