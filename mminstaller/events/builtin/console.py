"""
控制台输出监听器

把阶段、详情、进度和提示通过日志输出，进度按步长节流。
"""

from typing import Dict

from loguru import logger

from mminstaller.events.base import (
    AddAlert,
    AlertLevel,
    ChangeDetail,
    ChangePhase,
    EventListener,
    EventType,
    UpdateProgress,
)

PHASE_LABELS = {
    "downloadModLoader": "下载加载器",
    "downloadMods": "下载模组",
    "downloadResources": "下载资源",
    "addProfile": "添加启动器配置",
    "launchModLoader": "启动加载器安装程序",
}


class ConsoleListener(EventListener):
    """控制台输出监听器"""

    name = "console"

    def __init__(self, progress_step: float = 0.05):
        self.progress_step = progress_step
        self._last_progress = -1.0

    def register_handlers(self) -> Dict:
        return {
            EventType.CHANGE_PHASE: self.on_change_phase,
            EventType.CHANGE_DETAIL: self.on_change_detail,
            EventType.UPDATE_PROGRESS: self.on_update_progress,
            EventType.ADD_ALERT: self.on_add_alert,
        }

    def on_change_phase(self, event: ChangePhase):
        label = PHASE_LABELS.get(event.phase.value, event.phase.value)
        logger.info(f"[阶段] {label}")

    def on_change_detail(self, event: ChangeDetail):
        logger.debug(f"[详情] {event.detail}")

    def on_update_progress(self, event: UpdateProgress):
        if (
            event.progress >= 1.0
            or event.progress - self._last_progress >= self.progress_step
        ):
            self._last_progress = event.progress
            logger.info(f"[进度] {event.progress * 100:.1f}%")

    def on_add_alert(self, event: AddAlert):
        if event.level == AlertLevel.WARNING:
            logger.warning(f"[提示] {event.translation_key}")
        else:
            logger.info(f"[提示] {event.translation_key}")
