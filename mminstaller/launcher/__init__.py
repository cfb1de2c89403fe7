"""
mminstaller 启动器集成

安装完成后的可选步骤：添加启动器配置、启动加载器安装程序。
"""

from mminstaller.launcher.java import find_java, launch_jar, search_runtime_dir
from mminstaller.launcher.profiles import (
    add_launcher_profile,
    default_minecraft_dir,
    default_profiles_path,
)

__all__ = [
    "add_launcher_profile",
    "default_minecraft_dir",
    "default_profiles_path",
    "find_java",
    "launch_jar",
    "search_runtime_dir",
]
