"""
mminstaller 事件系统

提供安装阶段、进度和提示的事件分发。
"""

from mminstaller.events.base import (
    AddAlert,
    AlertLevel,
    ChangeDetail,
    ChangePhase,
    Event,
    EventEmitter,
    EventListener,
    EventType,
    Phase,
    UpdateProgress,
)
from mminstaller.events.builtin import ConsoleListener

__all__ = [
    # 事件类型
    "EventType",
    "Phase",
    "AlertLevel",
    "Event",
    "ChangePhase",
    "ChangeDetail",
    "UpdateProgress",
    "AddAlert",
    # 分发
    "EventListener",
    "EventEmitter",
    "ConsoleListener",
]
