"""
日志模块

使用 loguru 提供统一的日志记录功能。控制台只输出简要信息，
完整的诊断信息（含堆栈）写入日志目录下的文件。
"""

import os
import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

CONSOLE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"


def setup_logger(
    level: Optional[str] = None,
    sink=None,
    enqueue: bool = True,
    colorize: bool = True,
    log_dir: Optional[Union[str, Path]] = None,
) -> None:
    """
    设置日志记录器

    Args:
        level: 控制台日志级别 (DEBUG, INFO, WARNING, ERROR)
        sink: 控制台输出目标，默认为当前的 sys.stdout
        enqueue: 是否启用队列（线程安全）
        colorize: 是否启用颜色
        log_dir: 日志文件目录，为 None 时不写文件
    """
    # 从环境变量获取日志级别
    if level is None:
        level = "DEBUG" if os.environ.get("MMINSTALLER_DEBUG", "0") == "1" else "INFO"

    # 移除默认处理器
    logger.remove()

    # 添加控制台处理器
    logger.add(
        sink=sink or sys.stdout,
        format=CONSOLE_FORMAT,
        enqueue=enqueue,
        level=level,
        colorize=colorize,
        backtrace=(level == "DEBUG"),
        diagnose=(level == "DEBUG"),
    )

    if log_dir is not None:
        add_file_sink(log_dir, enqueue=enqueue)

    if level == "DEBUG":
        logger.debug("DEBUG 模式已启用")


def add_file_sink(log_dir: Union[str, Path], enqueue: bool = True) -> int:
    """
    添加日志文件处理器，始终记录完整诊断信息

    Returns:
        int: 处理器 ID，可用于 logger.remove
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    return logger.add(
        sink=str(log_dir / "installer_{time:YYYY-MM-DD_HH-mm-ss}.log"),
        format=FILE_FORMAT,
        enqueue=enqueue,
        level="DEBUG",
        rotation="10 MB",
        encoding="utf-8",
        backtrace=True,
        diagnose=True,
    )


# 导出 logger
__all__ = ["logger", "setup_logger", "add_file_sink"]
