"""
下载管理器

流式下载单个文件到临时目录，同时计算 SHA1、上报字节级进度，
并从响应头或最终 URL 推导文件名。
"""

import asyncio
import hashlib
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional, Union

import aiofiles
import aiohttp
from aiohttp.multipart import (
    BadContentDispositionHeader,
    BadContentDispositionParam,
    content_disposition_filename,
    parse_content_disposition,
)
from loguru import logger
from yarl import URL

from mminstaller import APP_NAME, __version__
from mminstaller.exceptions import (
    DownloadError,
    FileOperationError,
    HTTPError,
    NameResolutionError,
)

DOWNLOAD_TIMEOUT_SECS = 10.0
CHUNK_SIZE = 8192
BODY_SNIPPET_LIMIT = 512
USER_AGENT = f"{APP_NAME}/{__version__}"


@dataclass
class DownloadProgress:
    """单个文件的下载进度"""

    received_bytes: int
    total_bytes: Optional[int] = None

    @property
    def fraction(self) -> Optional[float]:
        """完成比例；总大小未知时为 None"""
        if not self.total_bytes:
            return None
        return min(self.received_bytes / self.total_bytes, 1.0)


@dataclass
class DownloadOutcome:
    """下载结果"""

    path: Path
    hash: str
    size: int


ProgressCallback = Callable[[DownloadProgress], None]


def _sanitize_file_name(name: str) -> Optional[str]:
    # 只保留最后一个路径片段
    name = name.replace("\\", "/").split("/")[-1].strip()
    if name in ("", ".", ".."):
        return None
    return name


def _content_disposition_filename(header: str) -> Optional[str]:
    # aiohttp 处理引号、转义和 filename*；不合规的值按分号宽松解析
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", BadContentDispositionParam)
        warnings.simplefilter("ignore", BadContentDispositionHeader)
        _, params = parse_content_disposition(header)
    file_name = content_disposition_filename(params)
    if file_name:
        return file_name

    for part in header.split(";"):
        key, sep, value = part.strip().partition("=")
        if sep and key.strip().lower() == "filename":
            return value.strip().strip('"').strip("'")
    return None


def extract_file_name(headers: Mapping[str, str], final_url: URL) -> str:
    """
    推导目标文件名

    优先使用 Content-Disposition 中的 filename 属性，
    否则使用重定向后最终 URL 的最后一个非空路径片段。

    Raises:
        NameResolutionError: 两种方式都无法得到文件名
    """
    content_disposition = headers.get("Content-Disposition")
    if content_disposition:
        raw_name = _content_disposition_filename(content_disposition)
        file_name = _sanitize_file_name(raw_name) if raw_name else None
        if file_name:
            return file_name

    segments = [segment for segment in final_url.path.split("/") if segment]
    if segments:
        file_name = _sanitize_file_name(segments[-1].split("?")[0])
        if file_name:
            return file_name

    raise NameResolutionError(
        f"无法从响应头或最终 URL '{final_url}' 推导文件名",
        context={"url": str(final_url)},
    )


async def _read_body_snippet(response: aiohttp.ClientResponse) -> str:
    data = b""
    try:
        while len(data) < BODY_SNIPPET_LIMIT:
            chunk = await response.content.read(BODY_SNIPPET_LIMIT - len(data))
            if not chunk:
                break
            data += chunk
    except (aiohttp.ClientError, asyncio.TimeoutError):
        return "<failed to read body>"
    return data.decode("utf-8", errors="replace")


class DownloadManager:
    """下载管理器"""

    def __init__(
        self,
        timeout: float = DOWNLOAD_TIMEOUT_SECS,
        chunk_size: int = CHUNK_SIZE,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._session = session
        self._owned_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            # 只限制建立连接和单次读取的时间，不限制整个传输过程
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": USER_AGENT},
                timeout=aiohttp.ClientTimeout(
                    total=None, connect=self.timeout, sock_read=self.timeout
                ),
            )
            self._owned_session = True
        return self._session

    async def fetch(
        self,
        url: str,
        scratch_dir: Union[str, Path],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> DownloadOutcome:
        """
        下载文件到临时目录

        Args:
            url: 下载地址
            scratch_dir: 临时目录
            progress_callback: 每个数据块调用一次的进度回调

        Returns:
            DownloadOutcome: 本地路径、SHA1（小写十六进制）和字节数

        Raises:
            HTTPError: 非 2xx 响应
            NameResolutionError: 无法推导文件名
            DownloadError: 网络错误（重试后仍失败）
        """
        scratch_dir = Path(scratch_dir)

        for attempt in range(self.max_retries + 1):
            try:
                return await self._fetch_once(url, scratch_dir, progress_callback)
            except (HTTPError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                retryable = not isinstance(e, HTTPError) or e.status >= 500
                if retryable and attempt < self.max_retries:
                    delay = self.retry_delay * (2**attempt)
                    logger.warning(
                        f"[重试] 下载 '{url}' 失败 (第 {attempt + 1} 次): {e}. "
                        f"{delay:.1f}s 后重试..."
                    )
                    await asyncio.sleep(delay)
                    continue

                logger.error(f"[错误] 下载 '{url}' 最终失败: {e}")
                if isinstance(e, DownloadError):
                    raise
                raise DownloadError(
                    f"下载失败: {url}", context={"url": url, "error": repr(e)}
                ) from e

        # max_retries < 0 时不会进入循环
        raise DownloadError(f"下载失败: {url}", context={"url": url})

    async def _fetch_once(
        self,
        url: str,
        scratch_dir: Path,
        progress_callback: Optional[ProgressCallback],
    ) -> DownloadOutcome:
        # identity 编码保证写入的字节与服务器发送的字节一致
        async with self.session.get(
            url, headers={"Accept-Encoding": "identity"}
        ) as response:
            if not 200 <= response.status < 300:
                snippet = await _read_body_snippet(response)
                raise HTTPError(url, response.status, snippet)

            file_name = extract_file_name(response.headers, response.url)
            total_bytes = response.content_length

            try:
                scratch_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise FileOperationError(
                    f"无法创建目录: {scratch_dir}", context={"error": str(e)}
                ) from e

            destination = scratch_dir / file_name
            if total_bytes is not None:
                logger.info(
                    f"[信息] {file_name} 文件大小: {total_bytes / (1024 * 1024):.2f} MB"
                )

            sha1 = hashlib.sha1()
            received_bytes = 0
            try:
                async with aiofiles.open(destination, "wb") as f:
                    async for chunk in response.content.iter_chunked(self.chunk_size):
                        await f.write(chunk)
                        sha1.update(chunk)
                        received_bytes += len(chunk)
                        if progress_callback:
                            progress_callback(
                                DownloadProgress(received_bytes, total_bytes)
                            )
            except (aiohttp.ClientError, asyncio.TimeoutError):
                self.discard(destination)
                raise
            except OSError as e:
                self.discard(destination)
                raise FileOperationError(
                    f"写入文件失败: {destination}", context={"error": str(e)}
                ) from e
            except BaseException:
                self.discard(destination)
                raise

        return DownloadOutcome(
            path=destination, hash=sha1.hexdigest(), size=received_bytes
        )

    @staticmethod
    def discard(path: Path):
        """清理不完整的文件"""
        if path.exists():
            try:
                os.remove(path)
            except OSError:
                logger.warning(f"[警告] 无法删除不完整的文件: {path}")

    async def close(self):
        """关闭 session"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()
