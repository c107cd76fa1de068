import logging
from typing import Union

from uvicorn.logging import DefaultFormatter

ROOT_LOGGER_NAME = "fastuow"

LogLevel = Union[int, str]


def get_logger(name: str, log_level: LogLevel = logging.INFO) -> logging.Logger:
    """``fastuow`` 하위 로거를 리턴합니다.

    핸들러는 로거당 한 번만 붙이므로 여러 번 호출해도 로그가 중복 출력되지 않습니다.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(log_level)
        ch = logging.StreamHandler()
        ch.setFormatter(DefaultFormatter(fmt="%(levelprefix)s %(message)s"))
        logger.addHandler(ch)

    return logger


def set_log_level(log_level: LogLevel) -> None:
    """이미 생성된 모든 ``fastuow.*`` 로거의 레벨을 변경합니다."""
    if isinstance(log_level, str):
        log_level = log_level.upper()

    for name in list(logging.root.manager.loggerDict):
        if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
            logging.getLogger(name).setLevel(log_level)
