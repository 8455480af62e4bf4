"""日志工具模块。

统一的 logger 获取方式，以及命令行入口使用的一次性日志配置。
"""

import inspect
import logging


_configured = False


def get_logger(name: str | None = None) -> logging.Logger:
    """获取以调用模块命名的日志记录器。

    Args:
        name: 日志记录器名称，默认取调用方模块的 __name__

    Returns:
        logging.Logger: 日志记录器
    """
    if name is None:
        frame = inspect.currentframe()
        caller = frame.f_back if frame else None
        name = caller.f_globals.get("__name__", "pics_minifier") if caller else "pics_minifier"

    return logging.getLogger(name)


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """按 LoggingDefaults 配置根日志，重复调用无副作用。

    库代码本身不安装 handler，只有入口程序调用此函数。

    Args:
        level: 日志级别，None 时使用配置中的 LOG_LEVEL
        fmt: 日志格式，None 时使用配置中的 LOG_FORMAT
    """
    global _configured
    if _configured:
        return

    from ..config import get_config

    defaults = get_config().logging
    logging.basicConfig(
        level=getattr(logging, (level or defaults.LOG_LEVEL).upper(), logging.INFO),
        format=fmt or defaults.LOG_FORMAT,
    )
    _configured = True
