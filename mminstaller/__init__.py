"""
mminstaller - 整合包安装器

下载并校验整合包的加载器、模组和资源，记录安装状态以支持断点续装。
"""

__version__ = "0.3.0"

APP_NAME = "mm-installer"

__all__ = ["__version__", "APP_NAME"]
