"""
User-facing messages, English and Chinese.

Presentation only: the CLI looks texts up here, the install and
uninstall flows log in English and never import this module.
"""

from __future__ import annotations

import os

DEFAULT_LANG = "en"

_EN: dict[str, str] = {
    "title": "MikuDB Provisioner",
    "install_dir": "Installation directory:",
    "data_dir": "Data directory:",
    "config_dir": "Config directory:",
    "detected_os": "Detected host:",
    "existing_install": "Existing MikuDB installation detected!",
    "exist_service": "Service:",
    "exist_binary": "Binary:",
    "exist_config": "Config:",
    "exist_version": "Installed version:",
    "server_running": "MikuDB server is running; install or uninstall will stop it.",
    "no_install": "No MikuDB installation found.",
    "overwrite_prompt": "Do you want to overwrite the existing installation?",
    "uninstall_prompt": "Remove MikuDB from this host?",
    "cancelled": "Installation aborted by user",
    "uninstall_cancelled": "Uninstall aborted by user",
    "need_root": "This command must be run as root",
    "run_as_root": "Please run it again with sudo",
    "prerequisite_failed": "Prerequisite check failed:",
    "install_failed": "Installation failed:",
    "uninstall_failed": "Uninstall failed:",
    "install_complete": "MikuDB installation complete!",
    "uninstall_success": "MikuDB uninstalled successfully!",
    "data_preserved": "Data directory preserved:",
    "to_remove_data": "To remove data, manually run: rm -rf",
    "config_written": "Configuration written to",
    "service_running": "Service is running",
    "service_not_verified": "Service did not report running, check logs:",
    "skip_service": "Service registration skipped",
    "warnings": "Warnings:",
    "features": "Features:",
    "connect_to": "Connect to MikuDB:",
    "username": "Username:",
    "password": "Password:",
    "change_password": "Please change the default password!",
}

_ZH: dict[str, str] = {
    "title": "MikuDB 部署工具",
    "install_dir": "安装目录:",
    "data_dir": "数据目录:",
    "config_dir": "配置目录:",
    "detected_os": "检测到主机:",
    "existing_install": "检测到已存在的 MikuDB 安装!",
    "exist_service": "服务:",
    "exist_binary": "二进制文件:",
    "exist_config": "配置文件:",
    "exist_version": "已安装版本:",
    "server_running": "MikuDB 服务正在运行,安装或卸载将停止它。",
    "no_install": "未发现 MikuDB 安装。",
    "overwrite_prompt": "是否覆盖现有安装?",
    "uninstall_prompt": "是否从本机移除 MikuDB?",
    "cancelled": "用户取消安装",
    "uninstall_cancelled": "用户取消卸载",
    "need_root": "此命令必须以 root 身份运行",
    "run_as_root": "请使用 sudo 重新运行",
    "prerequisite_failed": "前置条件检查失败:",
    "install_failed": "安装失败:",
    "uninstall_failed": "卸载失败:",
    "install_complete": "MikuDB 安装完成!",
    "uninstall_success": "MikuDB 卸载成功!",
    "data_preserved": "数据目录已保留:",
    "to_remove_data": "如需删除数据，请手动运行: rm -rf",
    "config_written": "配置已写入",
    "service_running": "服务正在运行",
    "service_not_verified": "服务未能确认运行，请检查日志:",
    "skip_service": "已跳过服务注册",
    "warnings": "警告:",
    "features": "特性:",
    "connect_to": "连接到 MikuDB:",
    "username": "用户名:",
    "password": "密码:",
    "change_password": "请修改默认密码!",
}

_TABLES = {"en": _EN, "zh": _ZH}


def select_language(value: str | None = None) -> str:
    """Map ``--lang`` / ``$LANG`` values to a table key.

    ``en_US.UTF-8`` → en, ``zh_CN.UTF-8`` / ``cn`` → zh, anything else → en.
    """
    if value is None:
        value = os.environ.get("LANG", "")
    value = value.strip().lower()
    if value.startswith("zh") or value.startswith("cn"):
        return "zh"
    return DEFAULT_LANG


def get_text(key: str, lang: str = DEFAULT_LANG) -> str:
    """Look up a message; falls back to English, then to the key itself."""
    table = _TABLES.get(lang, _EN)
    return table.get(key) or _EN.get(key, key)
