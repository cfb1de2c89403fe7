"""
事件系统基类

定义安装过程中的事件类型、监听器接口和分发器。
事件单向、按顺序同步分发，监听器失败只记录日志，不影响安装。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Union

from loguru import logger


class EventType(Enum):
    """事件类型"""

    CHANGE_PHASE = "changePhase"
    CHANGE_DETAIL = "changeDetail"
    UPDATE_PROGRESS = "updateProgress"
    ADD_ALERT = "addAlert"


class Phase(Enum):
    """安装阶段"""

    DOWNLOAD_MOD_LOADER = "downloadModLoader"
    DOWNLOAD_MODS = "downloadMods"
    DOWNLOAD_RESOURCES = "downloadResources"
    ADD_PROFILE = "addProfile"
    LAUNCH_MOD_LOADER = "launchModLoader"


class AlertLevel(Enum):
    """提示级别"""

    INFO = "info"
    WARNING = "warning"


@dataclass(frozen=True)
class ChangePhase:
    phase: Phase
    type = EventType.CHANGE_PHASE

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "phase": self.phase.value}


@dataclass(frozen=True)
class ChangeDetail:
    detail: str
    type = EventType.CHANGE_DETAIL

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "detail": self.detail}


@dataclass(frozen=True)
class UpdateProgress:
    """整体进度，取值 [0, 1]"""

    progress: float
    type = EventType.UPDATE_PROGRESS

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "progress": self.progress}


@dataclass(frozen=True)
class AddAlert:
    level: AlertLevel
    translation_key: str
    type = EventType.ADD_ALERT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "level": self.level.value,
            "translationKey": self.translation_key,
        }


Event = Union[ChangePhase, ChangeDetail, UpdateProgress, AddAlert]
EventHandler = Callable[[Event], Any]


class EventListener(ABC):
    """
    事件监听器基类

    子类通过 register_handlers 声明关心的事件类型。
    """

    name: str = ""

    @abstractmethod
    def register_handlers(self) -> Dict[EventType, EventHandler]:
        """
        注册事件处理器

        Returns:
            Dict[EventType, EventHandler]: 事件类型到处理函数的映射
        """
        pass


class EventEmitter:
    """
    事件分发器

    按注册顺序同步调用处理器。
    """

    def __init__(self):
        self._handlers: Dict[EventType, List[EventHandler]] = {
            event_type: [] for event_type in EventType
        }
        self._listeners: Dict[int, Dict[EventType, EventHandler]] = {}

    def subscribe(self, handler: EventHandler):
        """订阅所有事件"""
        for handlers in self._handlers.values():
            handlers.append(handler)

    def register(self, listener: EventListener) -> bool:
        """
        注册监听器

        Returns:
            bool: 是否注册成功（同一监听器不会重复注册）
        """
        if id(listener) in self._listeners:
            logger.warning(f"监听器 {listener.name or listener!r} 已注册，跳过")
            return False

        handlers = listener.register_handlers()
        for event_type, handler in handlers.items():
            self._handlers[event_type].append(handler)
        self._listeners[id(listener)] = handlers
        logger.debug(f"监听器 {listener.name or type(listener).__name__} 注册成功")
        return True

    def unregister(self, listener: EventListener) -> bool:
        handlers = self._listeners.pop(id(listener), None)
        if handlers is None:
            return False
        for event_type, handler in handlers.items():
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)
        return True

    def emit(self, event: Event):
        """分发事件；处理器抛出的异常只记录日志"""
        for handler in list(self._handlers[event.type]):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"事件 {event.type.value} 处理失败: {e}")

    def change_phase(self, phase: Phase):
        self.emit(ChangePhase(phase))

    def change_detail(self, detail: str):
        self.emit(ChangeDetail(detail))

    def update_progress(self, progress: float):
        self.emit(UpdateProgress(progress))

    def add_alert(self, level: AlertLevel, translation_key: str):
        self.emit(AddAlert(level, translation_key))
