"""
命令接口

供界面层调用：检查能否安装、启动安装（同一进程同时只允许一个）、打开日志目录。
返回给调用方的错误信息只包含简要说明，完整信息写入日志文件。
"""

import threading
from dataclasses import dataclass
from typing import Callable, Optional

import click
from loguru import logger

from mminstaller.events import EventEmitter
from mminstaller.exceptions import BusyError, InstallerError
from mminstaller.logger import add_file_sink
from mminstaller.models import Manifest
from mminstaller.orchestrator import Installer, InstallStats
from mminstaller.settings import InstallerSettings

InstallerFactory = Callable[[Manifest, InstallerSettings, EventEmitter], Installer]


@dataclass
class RunResult:
    """安装结果"""

    success: bool
    error: Optional[str] = None
    stats: Optional[InstallStats] = None


class InstallerApp:
    """安装器命令接口"""

    def __init__(
        self,
        settings: Optional[InstallerSettings] = None,
        emitter: Optional[EventEmitter] = None,
        installer_factory: Optional[InstallerFactory] = None,
        log_to_file: bool = True,
    ):
        self.settings = settings or InstallerSettings.from_env()
        self.emitter = emitter or EventEmitter()
        self.installer_factory = installer_factory or Installer
        self.log_to_file = log_to_file

        self._lock = threading.Lock()
        self._running = False
        self._file_sink_id: Optional[int] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def can_install(self) -> bool:
        """清单文件存在时才能安装"""
        return self.settings.manifest_path.is_file()

    def _acquire(self):
        with self._lock:
            if self._running:
                raise BusyError("已有安装任务在运行")
            self._running = True

    def _release(self):
        with self._lock:
            self._running = False

    async def start_run(self) -> RunResult:
        """
        启动安装

        Returns:
            RunResult: 成功与否；失败时 error 为简要说明

        Raises:
            BusyError: 已有安装任务在运行（不会改变任何状态）
        """
        self._acquire()
        try:
            if self.log_to_file and self._file_sink_id is None:
                self._file_sink_id = add_file_sink(self.settings.log_dir)
            return await self._run()
        finally:
            self._release()

    async def _run(self) -> RunResult:
        try:
            manifest = Manifest.load(self.settings.manifest_path)
            installer = self.installer_factory(manifest, self.settings, self.emitter)
            stats = await installer.run()
        except InstallerError as e:
            logger.opt(exception=e).error(f"安装失败: {e.to_dict()}")
            return RunResult(success=False, error=f"安装失败 ({e.code})，详情请查看日志")
        except Exception as e:
            logger.opt(exception=e).error(f"安装时发生未预期的错误: {e!r}")
            return RunResult(success=False, error="安装时发生未预期的错误，详情请查看日志")

        return RunResult(success=True, stats=stats)

    def open_log_folder(self) -> bool:
        """用系统默认程序打开日志目录"""
        log_dir = self.settings.log_dir
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            click.launch(str(log_dir))
        except Exception as e:
            logger.error(f"无法打开日志目录 {log_dir}: {e}")
            return False
        return True

    def close(self):
        """移除本实例添加的日志文件处理器"""
        if self._file_sink_id is not None:
            logger.remove(self._file_sink_id)
            self._file_sink_id = None
