"""
日志配置
基于 loguru，提供统一的控制台和文件输出
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    配置日志输出

    Args:
        level: 日志级别
        log_file: 日志文件路径（可选，按 10 MB 轮转）
    """
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(path, level=level, rotation="10 MB", retention=5, encoding="utf-8")

    logger.debug(f"日志已配置：level={level}, file={log_file}")
