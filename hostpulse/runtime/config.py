"""
Config: loads and validates YAML configuration files.
配置读取器：加载和验证 YAML 配置文件。

Reads a YAML file (e.g. configs/hostpulse.yaml) and provides typed access
to collector, supervisor and logging settings. Out-of-range or malformed
values fall back to their defaults instead of failing startup. Also handles
command-line argument parsing for --config, --debug and --once.

读取 YAML 文件（如 configs/hostpulse.yaml），为采集器、监管器和日志设置提供类型化访问。
超出范围或格式错误的值回退到默认值，而不是让启动失败。
同时处理 --config、--debug 和 --once 命令行参数解析。
"""

import argparse
import logging
import os
from typing import Any, Optional

import yaml

from hostpulse.version import MODULE_NAME, VERSION

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "configs/hostpulse.yaml"
DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Config:
    """
    Typed wrapper around a YAML configuration file.
    YAML 配置文件的类型化封装。

    Parameters / 参数
    ----------
    config_path : str, optional
        Path to the YAML configuration file. None means "all defaults".
        YAML 配置文件路径。None 表示全部使用默认值。
    """

    def __init__(self, config_path: Optional[str] = None):
        self._path = config_path
        self._raw: dict[str, Any] = {}
        if config_path is not None:
            with open(config_path, "r", encoding="utf-8") as f:
                self._raw = yaml.safe_load(f) or {}
            if not isinstance(self._raw, dict):
                raise ValueError(f"{config_path}: top level must be a mapping")

    @classmethod
    def defaults(cls) -> "Config":
        return cls(None)

    @classmethod
    def load(cls, config_path: str) -> "Config":
        """
        Load *config_path*, falling back to defaults if the file is missing.
        加载配置文件；文件不存在时回退到默认值。
        """
        if not os.path.exists(config_path):
            logger.warning("config file %s not found, using defaults", config_path)
            return cls.defaults()
        return cls(config_path)

    def _get(self, section: str, key: str, default: Any = None) -> Any:
        """Retrieve a value from section.key with a fallback default. / 从 section.key 获取值，带回退默认值。"""
        section_raw = self._raw.get(section)
        if not isinstance(section_raw, dict):
            return default
        return section_raw.get(key, default)

    def _get_number(self, section: str, key: str, default: float, low: float, high: float) -> float:
        """Numeric value in (low, high]; anything else yields *default*."""
        value = self._get(section, key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return default
        if value <= low or value > high:
            return default
        return float(value)

    # ------------------------------------------------------------------
    # System / 系统
    # ------------------------------------------------------------------

    @property
    def system_name(self) -> str:
        return self._get("system", "name", MODULE_NAME)

    @property
    def system_version(self) -> str:
        return VERSION

    # ------------------------------------------------------------------
    # Collector / 采集器
    # ------------------------------------------------------------------

    @property
    def period_s(self) -> float:
        return self._get_number("collector", "period_s", 3.0, 0.0, 3600.0)

    @property
    def sample_interval_s(self) -> float:
        return self._get_number("collector", "sample_interval_s", 1.0, 0.0, 60.0)

    @property
    def disk_mount_point(self) -> str:
        value = self._get("collector", "disk_mount_point", "/")
        if not isinstance(value, str) or not value:
            return "/"
        return value

    # ------------------------------------------------------------------
    # Supervisor / 监管器
    # ------------------------------------------------------------------

    @property
    def shutdown_timeout_s(self) -> float:
        return self._get_number("supervisor", "shutdown_timeout_s", 10.0, 0.0, 300.0)

    # ------------------------------------------------------------------
    # Logging / 日志
    # ------------------------------------------------------------------

    @property
    def log_level(self) -> str:
        value = str(self._get("log", "level", "INFO")).upper()
        return value if value in _LOG_LEVELS else "INFO"

    @property
    def log_format(self) -> str:
        value = self._get("log", "format", DEFAULT_LOG_FORMAT)
        if not isinstance(value, str):
            return DEFAULT_LOG_FORMAT
        try:
            logging.Formatter(value)
        except ValueError:
            return DEFAULT_LOG_FORMAT
        return value

    # ------------------------------------------------------------------
    # Runtime / 运行时
    # ------------------------------------------------------------------

    @property
    def debug(self) -> bool:
        return bool(self._get("runtime", "debug", False))

    # ------------------------------------------------------------------
    # Raw access / 原始访问
    # ------------------------------------------------------------------

    @property
    def raw(self) -> dict:
        """Full raw config dict. / 完整的原始配置字典。"""
        return dict(self._raw)

    @property
    def path(self) -> Optional[str]:
        """Path to the loaded config file (None for defaults). / 加载的配置文件路径。"""
        return self._path


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments for the hostpulse daemon.
    解析 hostpulse 守护进程的命令行参数。

    Usage / 用法:
        python -m hostpulse.runtime.main_loop --config configs/hostpulse.yaml
        python -m hostpulse.runtime.main_loop --debug
        python -m hostpulse.runtime.main_loop --once

    Returns / 返回
    -------
    argparse.Namespace
        Parsed arguments with .config (str), .debug (bool) and .once (bool).
    """
    parser = argparse.ArgumentParser(
        prog=MODULE_NAME,
        description="Host resource monitoring daemon / 主机资源监控守护进程",
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to YAML config file (default: {DEFAULT_CONFIG_PATH}) / YAML 配置文件路径",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Run in debug mode: verbose per-cycle logging / 调试模式：逐周期详细日志",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        default=False,
        help="Collect a single snapshot, print it as JSON and exit / 采集一次快照，以 JSON 输出后退出",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {VERSION}",
    )
    return parser.parse_args(argv)
