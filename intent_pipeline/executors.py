"""
Default OS executors.

One callable per resolved-action variant. Each either returns normally or
raises ExecutorError; the dispatcher never looks further than that.
"""

from __future__ import annotations

import os
import shlex
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from logging_setup import get_logger, Component

from .actions import ExecutorError


logger = get_logger(Component.EXECUTOR)

SYSTEM_COMMAND_TIMEOUT_S = 10

# argv templates per platform; "{level}" is replaced for volume_set
SYSTEM_COMMANDS: Dict[str, Dict[str, List[str]]] = {
    "win32": {
        "shutdown": ["shutdown", "/s", "/t", "0"],
        "restart": ["shutdown", "/r", "/t", "0"],
        "lock": ["rundll32.exe", "user32.dll,LockWorkStation"],
    },
    "linux": {
        "volume_mute": ["amixer", "-q", "-D", "pulse", "sset", "Master", "toggle"],
        "volume_up": ["amixer", "-q", "-D", "pulse", "sset", "Master", "5%+"],
        "volume_down": ["amixer", "-q", "-D", "pulse", "sset", "Master", "5%-"],
        "volume_set": ["amixer", "-q", "-D", "pulse", "sset", "Master", "{level}%"],
        "sleep": ["systemctl", "suspend"],
        "shutdown": ["systemctl", "poweroff"],
        "restart": ["systemctl", "reboot"],
        "lock": ["loginctl", "lock-session"],
    },
    "darwin": {
        "volume_mute": ["osascript", "-e", "set volume output muted not (output muted of (get volume settings))"],
        "volume_up": ["osascript", "-e", "set volume output volume ((output volume of (get volume settings)) + 6)"],
        "volume_down": ["osascript", "-e", "set volume output volume ((output volume of (get volume settings)) - 6)"],
        "volume_set": ["osascript", "-e", "set volume output volume {level}"],
        "sleep": ["pmset", "sleepnow"],
        "shutdown": ["osascript", "-e", 'tell app "System Events" to shut down'],
        "restart": ["osascript", "-e", 'tell app "System Events" to restart'],
        "lock": ["pmset", "displaysleepnow"],
    },
}

# Windows virtual-key codes for the media volume keys
WINDOWS_VOLUME_KEYS = {
    "volume_mute": 0xAD,
    "volume_down": 0xAE,
    "volume_up": 0xAF,
}


def platform_key(platform: Optional[str] = None) -> str:
    platform = platform or sys.platform
    if platform.startswith("linux"):
        return "linux"
    return platform


def resolve_path(path: str, cwd: Optional[Path] = None) -> Path:
    """Expand ~ and resolve relative paths against the working directory."""
    p = Path(path).expanduser()
    if not p.is_absolute():
        p = (cwd or Path.cwd()) / p
    return p


class OpenPathExecutor:
    """Opens a file with the desktop's default handler."""

    def __init__(self, platform: Optional[str] = None, popen=subprocess.Popen):
        self.platform = platform_key(platform)
        self._popen = popen

    def __call__(self, path: str) -> None:
        target = resolve_path(path)
        if not target.exists():
            raise ExecutorError(f"file not found: {target}")
        try:
            if self.platform == "win32":
                os.startfile(str(target))  # type: ignore[attr-defined]
            elif self.platform == "darwin":
                self._popen(["open", str(target)], start_new_session=True)
            else:
                self._popen(["xdg-open", str(target)], start_new_session=True)
        except OSError as e:
            raise ExecutorError(f"could not open {target}", cause=e) from e
        logger.info("Opened path", path=str(target))


class LaunchExecutor:
    """Starts an application command without waiting for it."""

    def __init__(self, platform: Optional[str] = None, popen=subprocess.Popen):
        self.platform = platform_key(platform)
        self._popen = popen

    def __call__(self, command: str) -> None:
        try:
            if self.platform == "win32":
                # "start" resolves App Paths entries such as chrome.exe
                self._popen(f'cmd /C start "" "{command}"', shell=False)
            else:
                self._popen(shlex.split(command), start_new_session=True)
        except (OSError, ValueError) as e:
            raise ExecutorError(f"could not launch '{command}'", cause=e) from e
        logger.info("Launched application", command=command)


class SystemActionExecutor:
    """Runs a named system action through the platform's command line tools."""

    def __init__(self, platform: Optional[str] = None, run=subprocess.run, windll=None):
        self.platform = platform_key(platform)
        self._run = run
        self._windll = windll

    def __call__(self, action_name: str, argument: Optional[int] = None) -> None:
        if self.platform == "win32" and action_name in WINDOWS_VOLUME_KEYS:
            self._press_windows_key(WINDOWS_VOLUME_KEYS[action_name])
            return
        if self.platform == "win32" and action_name == "sleep":
            self._suspend_windows()
            return

        template = SYSTEM_COMMANDS.get(self.platform, {}).get(action_name)
        if template is None:
            raise ExecutorError(f"system action '{action_name}' is not supported on {self.platform}")

        argv = [part.replace("{level}", str(argument if argument is not None else 50)) for part in template]
        try:
            self._run(argv, check=True, capture_output=True, timeout=SYSTEM_COMMAND_TIMEOUT_S)
        except (OSError, subprocess.SubprocessError) as e:
            raise ExecutorError(f"system action '{action_name}' failed", cause=e) from e
        logger.info("System action executed", action=action_name, argument=argument)

    def _get_windll(self):
        if self._windll is not None:
            return self._windll
        import ctypes

        return ctypes.windll  # type: ignore[attr-defined]

    def _press_windows_key(self, vk_code: int) -> None:
        keyeventf_keyup = 0x0002
        try:
            user32 = self._get_windll().user32
            user32.keybd_event(vk_code, 0, 0, 0)
            user32.keybd_event(vk_code, 0, keyeventf_keyup, 0)
        except (AttributeError, OSError) as e:
            raise ExecutorError("could not send volume key", cause=e) from e

    def _suspend_windows(self) -> None:
        # SetSuspendState(hibernate, force, disable_wake_events): plain sleep, never hibernate
        try:
            ok = self._get_windll().powrprof.SetSuspendState(0, 0, 0)
        except (AttributeError, OSError) as e:
            raise ExecutorError("could not suspend", cause=e) from e
        if not ok:
            raise ExecutorError("SetSuspendState refused to suspend")
        logger.info("System action executed", action="sleep")


@dataclass
class Executors:
    """The four side-effecting capabilities the dispatcher can call."""

    open_path: Callable[[str], None]
    launch: Callable[[str], None]
    run_system: Callable[[str, Optional[int]], None]
    speak: Callable[[str], None]


def default_executors(speak: Callable[[str], None], platform: Optional[str] = None) -> Executors:
    return Executors(
        open_path=OpenPathExecutor(platform),
        launch=LaunchExecutor(platform),
        run_system=SystemActionExecutor(platform),
        speak=speak,
    )
