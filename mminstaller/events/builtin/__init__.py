"""
内置事件监听器
"""

from mminstaller.events.builtin.console import ConsoleListener

__all__ = ["ConsoleListener"]
