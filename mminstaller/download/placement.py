"""
文件放置

把校验通过的文件从临时目录原子地移动到最终位置，或将压缩包解压到目标目录。
"""

import os
import zipfile
from pathlib import Path
from typing import List, Union

from loguru import logger

from mminstaller.exceptions import FileOperationError


def move_file(source: Union[str, Path], destination: Union[str, Path]) -> None:
    """
    移动文件到最终路径

    自动创建父目录；目标已存在时会被覆盖并记录警告。

    Raises:
        FileOperationError: 创建目录或重命名失败
    """
    source = Path(source)
    destination = Path(destination)

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FileOperationError(
            f"无法创建目标目录: {destination.parent}",
            context={"error": str(e)},
        ) from e

    if destination.exists():
        logger.warning(f"[覆盖] 目标文件 {destination} 已存在，将被覆盖")

    try:
        os.replace(source, destination)
    except OSError as e:
        raise FileOperationError(
            f"移动文件失败: {source} -> {destination}",
            context={"source": str(source), "destination": str(destination), "error": str(e)},
        ) from e


def extract_archive(
    archive_path: Union[str, Path], target_dir: Union[str, Path]
) -> List[str]:
    """
    解压 ZIP 到目标目录，完成后删除压缩包

    Args:
        archive_path: 压缩包路径
        target_dir: 解压目录

    Returns:
        解压出的文件相对路径列表

    Raises:
        FileOperationError: 不是有效的 ZIP、成员路径越界或写入失败
    """
    archive_path = Path(archive_path)
    target_dir = Path(target_dir)
    root = target_dir.resolve()

    try:
        with zipfile.ZipFile(archive_path) as archive:
            members = archive.infolist()
            for member in members:
                member_path = (root / member.filename).resolve()
                if member_path != root and root not in member_path.parents:
                    raise FileOperationError(
                        f"压缩包成员路径越界: {member.filename}",
                        context={"archive": str(archive_path)},
                    )
            target_dir.mkdir(parents=True, exist_ok=True)
            archive.extractall(target_dir)
            extracted = [m.filename for m in members if not m.is_dir()]
    except zipfile.BadZipFile as e:
        raise FileOperationError(
            f"不是有效的 ZIP 文件: {archive_path.name}",
            context={"archive": str(archive_path), "error": str(e)},
        ) from e
    except OSError as e:
        raise FileOperationError(
            f"解压失败: {archive_path.name}",
            context={"archive": str(archive_path), "error": str(e)},
        ) from e

    try:
        archive_path.unlink()
    except OSError as e:
        logger.warning(f"[警告] 无法删除压缩包 {archive_path}: {e}")

    logger.info(f"[解压] {archive_path.name} -> {target_dir} ({len(extracted)} 个文件)")
    return extracted
