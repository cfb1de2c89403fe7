"""
mminstaller 下载层

包含流式下载、文件校验、文件放置等功能。
"""

from mminstaller.download.manager import (
    DownloadManager,
    DownloadOutcome,
    DownloadProgress,
    extract_file_name,
)
from mminstaller.download.placement import extract_archive, move_file
from mminstaller.download.verifier import FileVerifier, hash_matches

__all__ = [
    "DownloadManager",
    "DownloadOutcome",
    "DownloadProgress",
    "extract_file_name",
    "extract_archive",
    "move_file",
    "FileVerifier",
    "hash_matches",
]
