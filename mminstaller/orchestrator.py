"""
主协调器

按 准备工作区 -> 加载器 -> 模组 -> 资源 -> 安装后步骤 的顺序执行安装，
每完成一个文件立即写入安装记录，中断后再次运行只会下载剩余部分。
"""

import asyncio
import os
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from mminstaller import __version__
from mminstaller.download import (
    DownloadManager,
    DownloadOutcome,
    DownloadProgress,
    FileVerifier,
    extract_archive,
    hash_matches,
    move_file,
)
from mminstaller.events import AlertLevel, EventEmitter, Phase
from mminstaller.exceptions import FileOperationError, IntegrityError
from mminstaller.launcher import add_launcher_profile, launch_jar
from mminstaller.ledger import InstallLedger, LoaderRecord, ModRecord, ResourceRecord
from mminstaller.models import Manifest, ModEntry, ResourceEntry, Side, Source
from mminstaller.services import ModrinthClient, SourceResolver
from mminstaller.settings import InstallerSettings


class RunState(Enum):
    """安装状态，只能前进"""

    START = 0
    PREPARE_WORKSPACE = 1
    INSTALL_LOADER = 2
    INSTALL_MODS = 3
    INSTALL_RESOURCES = 4
    POST_INSTALL = 5
    DONE = 6
    FAILED = 7


@dataclass
class InstallStats:
    """安装统计"""

    downloaded: int = 0
    skipped: int = 0


class ProgressTracker:
    """
    整体进度

    进度 = (已完成步数 + 当前文件比例) / 总步数，发出的值单调不减。
    """

    def __init__(self, total_steps: int, emitter: EventEmitter):
        self.total_steps = max(total_steps, 1)
        self.emitter = emitter
        self.completed = 0
        self._last = -1.0

    def _emit(self, value: float):
        value = min(max(value, 0.0), 1.0)
        if value > self._last:
            self._last = value
            self.emitter.update_progress(value)

    def start(self):
        self._emit(0.0)

    def on_download(self, progress: DownloadProgress):
        # 总大小未知时无法计算比例，等文件完成后整体前进
        fraction = progress.fraction
        if fraction is None:
            return
        self._emit((self.completed + fraction) / self.total_steps)

    def complete_step(self):
        self.completed += 1
        self._emit(self.completed / self.total_steps)

    def finish(self):
        self._emit(1.0)

    @property
    def value(self) -> float:
        return max(self._last, 0.0)


class Installer:
    """整合包安装协调器"""

    def __init__(
        self,
        manifest: Manifest,
        settings: InstallerSettings,
        emitter: Optional[EventEmitter] = None,
        download_manager: Optional[DownloadManager] = None,
        resolver: Optional[SourceResolver] = None,
        installer_version: str = __version__,
        post_install: bool = True,
    ):
        self.manifest = manifest
        self.settings = settings
        self.emitter = emitter or EventEmitter()
        self.installer_version = installer_version
        self.post_install = post_install

        self._owns_download_manager = download_manager is None
        self.download_manager = download_manager or DownloadManager(
            timeout=settings.request_timeout,
            chunk_size=settings.chunk_size,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
        )
        self._owned_client: Optional[ModrinthClient] = None
        if resolver is None:
            self._owned_client = ModrinthClient(
                base_url=settings.modrinth_api_url, timeout=settings.request_timeout
            )
            resolver = SourceResolver(self._owned_client)
        self.resolver = resolver

        self.state = RunState.START
        self.stats = InstallStats()
        self.ledger: Optional[InstallLedger] = None
        self.progress = ProgressTracker(self.total_steps(), self.emitter)

    def _transition(self, new_state: RunState):
        if new_state != RunState.FAILED and new_state.value <= self.state.value:
            raise RuntimeError(f"非法的状态转换: {self.state.name} -> {new_state.name}")
        logger.debug(f"[状态] {self.state.name} -> {new_state.name}")
        self.state = new_state

    def is_applicable(self, entry: Union[ModEntry, ResourceEntry]) -> bool:
        """未指定目标端时所有条目都适用"""
        target = self.settings.side
        return target is None or entry.side in (Side.BOTH, target)

    def applicable_mods(self):
        return [entry for entry in self.manifest.mods if self.is_applicable(entry)]

    def applicable_resources(self):
        return [entry for entry in self.manifest.resources if self.is_applicable(entry)]

    def total_steps(self) -> int:
        return 1 + len(self.applicable_mods()) + len(self.applicable_resources())

    async def run(self) -> InstallStats:
        """
        执行完整的安装流程

        Returns:
            InstallStats: 下载与跳过的文件数

        Raises:
            InstallerError: 下载阶段的任何错误都会终止安装，已写入的记录保持有效
        """
        logger.info(
            f"开始安装整合包 {self.manifest.profile.name} "
            f"(v{self.manifest.pack_version}) 到 {self.settings.install_dir}"
        )
        self.progress.start()

        try:
            self._transition(RunState.PREPARE_WORKSPACE)
            loop = asyncio.get_running_loop()
            # 目录清理和记录读取都是阻塞 IO，放到线程池执行
            await loop.run_in_executor(None, self._prepare_workspace)
            self.ledger = await loop.run_in_executor(
                None,
                InstallLedger.load_or_create,
                self.settings.state_path,
                self.installer_version,
            )

            self._transition(RunState.INSTALL_LOADER)
            await self._install_loader()

            self._transition(RunState.INSTALL_MODS)
            await self._install_mods()

            self._transition(RunState.INSTALL_RESOURCES)
            await self._install_resources()
            self.progress.finish()

            self._transition(RunState.POST_INSTALL)
            if self.post_install:
                self._run_post_install()

            self._transition(RunState.DONE)
            logger.success(
                f"安装完成: {self.stats.downloaded} 个下载, {self.stats.skipped} 个跳过"
            )
            return self.stats

        except Exception as e:
            failed_in = self.state.name
            self._transition(RunState.FAILED)
            logger.error(f"安装失败 ({failed_in}): {e}")
            raise
        finally:
            await self.close()

    def _prepare_workspace(self):
        """清空并重建临时目录"""
        temp_dir = self.settings.temp_dir
        if temp_dir.exists():
            try:
                shutil.rmtree(temp_dir)
            except OSError as e:
                raise FileOperationError(
                    f"无法清空临时目录: {temp_dir}", context={"error": str(e)}
                ) from e
        try:
            temp_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileOperationError(
                f"无法创建临时目录: {temp_dir}", context={"error": str(e)}
            ) from e

    async def _download_verified(
        self, name: str, url: str, expected_hash: str
    ) -> DownloadOutcome:
        """下载到临时目录并校验哈希；不匹配时文件不会离开临时目录"""
        logger.info(f"[下载] {name} <- {url}")
        self.emitter.change_detail(name)
        outcome = await self.download_manager.fetch(
            url, self.settings.temp_dir, self.progress.on_download
        )
        if not hash_matches(expected_hash, outcome.hash):
            DownloadManager.discard(outcome.path)
            raise IntegrityError(
                f"{name} 哈希不匹配: 期望 {expected_hash}，实际 {outcome.hash}",
                context={
                    "name": name,
                    "url": url,
                    "expected": expected_hash,
                    "actual": outcome.hash,
                },
            )
        self.stats.downloaded += 1
        return outcome

    async def _still_on_disk(self, path: Path, expected_hash: str) -> bool:
        if not self.settings.verify_on_disk:
            return True
        if await FileVerifier.verify_sha1(str(path), expected_hash):
            return True
        logger.warning(f"[校验] {path.name} 缺失或已被修改，将重新下载")
        return False

    def _skip(self, name: str):
        logger.info(f"[跳过] {name} 已安装")
        self.stats.skipped += 1

    @staticmethod
    def _remove_stale(old_path: Path, new_path: Path):
        """配置变更后删除旧版本文件"""
        if old_path != new_path and old_path.is_file():
            try:
                os.remove(old_path)
                logger.info(f"[清理] 已删除旧文件 {old_path.name}")
            except OSError as e:
                logger.warning(f"[警告] 无法删除旧文件 {old_path}: {e}")

    async def _install_loader(self):
        self.emitter.change_phase(Phase.DOWNLOAD_MOD_LOADER)
        loader = self.manifest.mod_loader
        install_dir = self.settings.install_dir
        record = self.ledger.get_loader()

        if record is not None and record.matches(loader):
            if await self._still_on_disk(install_dir / record.file_name, record.hash):
                self._skip(loader.name)
                self.progress.complete_step()
                return
        elif record is not None:
            logger.warning(f"[漂移] 加载器 {loader.name} 的配置已变更，重新下载")

        outcome = await self._download_verified(loader.name, loader.url, loader.hash)
        destination = install_dir / outcome.path.name
        move_file(outcome.path, destination)
        if record is not None:
            self._remove_stale(install_dir / record.file_name, destination)

        self.ledger.set_loader(
            LoaderRecord(file_name=outcome.path.name, url=loader.url, hash=loader.hash)
        )
        await self.ledger.persist(self.settings.state_path)
        self.progress.complete_step()

    async def _install_mods(self):
        self.emitter.change_phase(Phase.DOWNLOAD_MODS)
        mods_dir = self.settings.mods_dir

        for entry in self.manifest.mods:
            if not self.is_applicable(entry):
                logger.debug(f"[过滤] {entry.name} 不适用于 {self.settings.side.value} 端")
                continue

            record = self.ledger.get_mod(entry)
            if record is not None and record.matches(entry):
                if await self._still_on_disk(mods_dir / record.file_name, record.hash):
                    self._skip(entry.name)
                    self.progress.complete_step()
                    continue
            elif record is not None:
                logger.warning(f"[漂移] 模组 {entry.name} 的文件已变更，重新下载")

            outcome = await self._fetch_entry(entry.name, entry.source, entry.hash)
            destination = mods_dir / outcome.path.name
            move_file(outcome.path, destination)
            if record is not None:
                self._remove_stale(mods_dir / record.file_name, destination)

            self.ledger.record_mod(
                ModRecord(file_name=outcome.path.name, source=entry.source, hash=entry.hash)
            )
            await self.ledger.persist(self.settings.state_path)
            self.progress.complete_step()

    async def _install_resources(self):
        self.emitter.change_phase(Phase.DOWNLOAD_RESOURCES)

        for entry in self.manifest.resources:
            if not self.is_applicable(entry):
                logger.debug(f"[过滤] {entry.name} 不适用于 {self.settings.side.value} 端")
                continue

            target_dir = self.settings.install_dir / entry.target_dir
            record = self.ledger.get_resource(entry)
            if record is not None and record.matches(entry):
                # 解压后的内容无法按压缩包哈希校验，以安装记录为准
                if record.decompress or await self._still_on_disk(
                    target_dir / record.file_name, record.hash
                ):
                    self._skip(entry.name)
                    self.progress.complete_step()
                    continue
            elif record is not None:
                logger.warning(f"[漂移] 资源 {entry.name} 的文件已变更，重新下载")

            outcome = await self._fetch_entry(entry.name, entry.source, entry.hash)
            destination = target_dir / outcome.path.name
            if entry.decompress:
                await asyncio.get_running_loop().run_in_executor(
                    None, extract_archive, outcome.path, target_dir
                )
            else:
                move_file(outcome.path, destination)
                if record is not None and not record.decompress:
                    self._remove_stale(target_dir / record.file_name, destination)

            self.ledger.record_resource(
                ResourceRecord(
                    file_name=outcome.path.name,
                    source=entry.source,
                    hash=entry.hash,
                    target_dir=entry.target_dir,
                    decompress=entry.decompress,
                )
            )
            await self.ledger.persist(self.settings.state_path)
            self.progress.complete_step()

    async def _fetch_entry(
        self, name: str, source: Source, expected_hash: str
    ) -> DownloadOutcome:
        url = await self.resolver.resolve(source)
        return await self._download_verified(name, url, expected_hash)

    def _run_post_install(self):
        """添加启动器配置、按需启动加载器；失败只产生提示"""
        self.emitter.change_phase(Phase.ADD_PROFILE)
        try:
            add_launcher_profile(
                self.manifest.profile, self.settings.install_dir, settings=self.settings
            )
        except Exception as e:
            logger.warning(f"[警告] 添加启动器配置失败: {e}")
            self.emitter.add_alert(AlertLevel.WARNING, "alertOnFailedAddProfile")

        if not self.manifest.mod_loader.auto_open:
            return

        self.emitter.change_phase(Phase.LAUNCH_MOD_LOADER)
        try:
            record = self.ledger.get_loader()
            if record is None:
                raise FileOperationError("安装记录中没有加载器")
            jar_path = self.settings.install_dir / record.file_name
            logger.info(f"[启动] {jar_path.name}")
            launch_jar(jar_path, self.settings.install_dir)
        except Exception as e:
            logger.warning(f"[警告] 启动加载器失败: {e}")
            self.emitter.add_alert(AlertLevel.WARNING, "alertOnFailedLaunchModLoader")
        else:
            self.emitter.add_alert(AlertLevel.INFO, "alertOnLaunchModLoader")

    async def close(self):
        """关闭自己创建的网络会话"""
        if self._owns_download_manager:
            await self.download_manager.close()
        if self._owned_client is not None:
            await self._owned_client.close()
