"""
文件校验器

实现 SHA1 计算、哈希比较、已安装文件的完整性验证。
"""

import hashlib
import os
from typing import Optional

import aiofiles


def hash_matches(expected: str, actual: Optional[str]) -> bool:
    """不区分大小写比较十六进制哈希"""
    if actual is None:
        return False
    return expected.strip().lower() == actual.strip().lower()


class FileVerifier:
    """文件校验器"""

    @staticmethod
    async def calc_sha1(file_path: str) -> Optional[str]:
        """
        计算文件的 SHA1 值

        Args:
            file_path: 文件路径

        Returns:
            SHA1 哈希值或 None（如果文件不存在）
        """
        if not os.path.isfile(file_path):
            return None

        sha1 = hashlib.sha1()
        try:
            async with aiofiles.open(file_path, "rb") as f:
                while True:
                    data = await f.read(65536)
                    if not data:
                        break
                    sha1.update(data)
            return sha1.hexdigest()
        except (IOError, OSError):
            return None

    @staticmethod
    async def verify_sha1(file_path: str, expected_sha1: Optional[str]) -> bool:
        """
        校验文件的 SHA1 是否匹配

        Args:
            file_path: 文件路径
            expected_sha1: 预期的 SHA1 值

        Returns:
            是否匹配（如果没有预期值则只检查存在性）
        """
        if not expected_sha1:
            return os.path.isfile(file_path)

        current_sha1 = await FileVerifier.calc_sha1(file_path)
        return hash_matches(expected_sha1, current_sha1)
