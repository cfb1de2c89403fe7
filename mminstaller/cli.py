"""
CLI 模块

命令行接口实现。
"""

import asyncio
from pathlib import Path
from typing import Optional

import click
from loguru import logger

from mminstaller import __version__
from mminstaller.app import InstallerApp
from mminstaller.events import ConsoleListener, EventEmitter
from mminstaller.exceptions import InstallerError
from mminstaller.logger import setup_logger
from mminstaller.models import Manifest
from mminstaller.settings import InstallerSettings


def build_settings(
    config: Optional[str], install_dir: Optional[str], side: Optional[str]
) -> InstallerSettings:
    """命令行参数优先于环境变量；未指定安装目录时使用清单所在目录"""
    overrides = {"side": side}
    if config is not None:
        config_path = Path(config).resolve()
        overrides["manifest_file"] = config_path
        overrides["install_dir"] = Path(install_dir) if install_dir else config_path.parent
    elif install_dir is not None:
        overrides["install_dir"] = Path(install_dir)
    return InstallerSettings.from_env(**overrides)


def validate_only(settings: InstallerSettings):
    """只加载并验证清单"""
    try:
        manifest = Manifest.load(settings.manifest_path)
    except InstallerError as e:
        errors = e.context.get("errors") or [str(e)]
        for error in errors:
            logger.error(f"[校验] {error}")
        raise click.ClickException(str(e))

    logger.info("[干运行模式] 清单验证通过")
    logger.info(f"  整合包: {manifest.profile.name} v{manifest.pack_version}")
    logger.info(f"  游戏版本: {manifest.profile.version}")
    logger.info(f"  加载器: {manifest.mod_loader.name}")
    logger.info(f"  模组数量: {len(manifest.mods)}")
    logger.info(f"  资源数量: {len(manifest.resources)}")


async def run_async(app: InstallerApp):
    """异步运行"""
    if not app.can_install():
        raise click.ClickException(f"清单文件不存在: {app.settings.manifest_path}")

    try:
        result = await app.start_run()
    finally:
        app.close()

    if not result.success:
        raise click.ClickException(result.error)

    stats = result.stats
    logger.success(f"完成! 下载 {stats.downloaded} 个文件，跳过 {stats.skipped} 个")


@click.command()
@click.argument("config", type=click.Path(dir_okay=False), required=False)
@click.option("-d", "--dir", "install_dir", type=click.Path(file_okay=False), help="安装目录")
@click.option(
    "--side",
    type=click.Choice(["client", "server"], case_sensitive=False),
    help="只安装适用于该端的条目",
)
@click.option("--dry-run", is_flag=True, help="干运行模式（只验证清单）")
@click.option("--open-logs", is_flag=True, help="打开日志目录")
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.version_option(version=__version__)
def main(
    config: Optional[str],
    install_dir: Optional[str],
    side: Optional[str],
    dry_run: bool,
    open_logs: bool,
    debug: bool,
):
    """mm-installer - 整合包安装工具"""
    setup_logger(level="DEBUG" if debug else None)

    settings = build_settings(config, install_dir, side.lower() if side else None)

    if open_logs:
        app = InstallerApp(settings, log_to_file=False)
        if not app.open_log_folder():
            raise click.ClickException("无法打开日志目录")
        return

    if dry_run:
        validate_only(settings)
        return

    emitter = EventEmitter()
    emitter.register(ConsoleListener())
    asyncio.run(run_async(InstallerApp(settings, emitter)))


if __name__ == "__main__":
    main()
