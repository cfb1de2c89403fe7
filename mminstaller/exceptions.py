"""
mminstaller 统一异常体系

提供分层的异常结构，支持错误代码、上下文信息和 JSON 序列化。
"""

from typing import Any, Dict, Optional


class InstallerError(Exception):
    """安装器基础异常类"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self._get_default_code()
        self.context = context or {}

    def _get_default_code(self) -> str:
        """获取默认错误代码"""
        return "E000"

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ManifestError(InstallerError):
    """清单相关错误"""

    def _get_default_code(self) -> str:
        return "E100"


class FormatError(ManifestError):
    """清单或安装记录无法解析"""

    def _get_default_code(self) -> str:
        return "E101"


class ValidationError(ManifestError):
    """清单校验错误（带字段名）"""

    def __init__(
        self,
        field: str,
        reason: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(f"{field}: {reason}", code, context)
        self.field = field
        self.reason = reason
        self.context.setdefault("field", field)

    def _get_default_code(self) -> str:
        return "E102"


class APIError(InstallerError):
    """API 相关错误"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message, code, context)
        self.status = status
        if status is not None:
            self.context["status_code"] = status

    def _get_default_code(self) -> str:
        return "E200"


class NotFoundError(APIError):
    """仓库中不存在请求的版本"""

    def _get_default_code(self) -> str:
        return "E404"


class NoFilesError(APIError):
    """版本没有任何关联文件"""

    def _get_default_code(self) -> str:
        return "E204"


class DownloadError(InstallerError):
    """下载相关错误"""

    def _get_default_code(self) -> str:
        return "E300"


class HTTPError(DownloadError):
    """非 2xx 响应"""

    def __init__(
        self,
        url: str,
        status: int,
        body_snippet: str = "",
        code: Optional[str] = None,
    ):
        super().__init__(
            f"请求 {url} 失败 (状态码: {status})",
            code,
            context={"url": url, "status": status, "body": body_snippet},
        )
        self.url = url
        self.status = status
        self.body_snippet = body_snippet

    def _get_default_code(self) -> str:
        return "E301"


class IntegrityError(DownloadError):
    """哈希不匹配或来源身份不一致"""

    def _get_default_code(self) -> str:
        return "E302"


class FileOperationError(DownloadError):
    """文件读写、移动、删除失败"""

    def _get_default_code(self) -> str:
        return "E303"


class NameResolutionError(DownloadError):
    """无法从响应中推导出文件名"""

    def _get_default_code(self) -> str:
        return "E304"


class LauncherError(InstallerError):
    """启动器配置或 Java 调用失败（安装后步骤）"""

    def _get_default_code(self) -> str:
        return "E500"


class BusyError(InstallerError):
    """已有安装任务在运行"""

    def _get_default_code(self) -> str:
        return "E409"


__all__ = [
    # 基础异常
    "InstallerError",
    # 清单异常
    "ManifestError",
    "FormatError",
    "ValidationError",
    # API 异常
    "APIError",
    "NotFoundError",
    "NoFilesError",
    # 下载异常
    "DownloadError",
    "HTTPError",
    "IntegrityError",
    "FileOperationError",
    "NameResolutionError",
    # 安装后步骤
    "LauncherError",
    # 运行状态
    "BusyError",
]
