"""Module name and version. / 模块名称与版本。"""

MODULE_NAME = "hostpulse"
VERSION = "1.0.0"
