"""기본 환경 설정."""

from __future__ import annotations

import os
from configparser import ConfigParser
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional, Type

from sqlalchemy.pool import Pool, StaticPool

from fastuow.core import set_log_level

ENV_PREFIX = "FASTUOW_"
TRUTHY = {"1", "true", "yes", "on"}


def load_setupcfg(path: Path) -> dict[str, str]:
    """``setup.cfg`` 파일의 ``[fastuow]`` 섹션을 읽습니다. 없으면 빈 dict."""
    if (path / "setup.cfg").exists():
        config = ConfigParser()
        config.read(path / "setup.cfg")
        if "fastuow" in config:
            return dict(config["fastuow"])
    return {}


def _coerce(name: str, value: str) -> Any:
    if name == "echo":
        return value.strip().lower() in TRUTHY
    return value.strip()


@dataclass(frozen=True)
class FastUoWConfig:
    """FastUoW 설정.

    우선순위는 ``환경변수(FASTUOW_*) > setup.cfg [fastuow] 섹션 > 기본값`` 입니다.
    """

    db_url: str = "sqlite://"
    """SqlAlchemy 에서 사용 가능한 형식의 DB URL."""

    echo: bool = False
    """SQL 로그 출력 여부."""

    log_level: str = "INFO"
    """``fastuow.*`` 로거의 레벨."""

    @staticmethod
    def load_from_config(path: Path = Path(".")) -> FastUoWConfig:
        """``setup.cfg`` 와 환경변수에서 설정을 읽어옵니다."""
        values: dict[str, Any] = {}
        known = {f.name for f in fields(FastUoWConfig)}

        for key, value in load_setupcfg(path).items():
            if key in known:
                values[key] = _coerce(key, value)

        for name in known:
            env_value = os.environ.get(ENV_PREFIX + name.upper())
            if env_value is not None:
                values[name] = _coerce(name, env_value)

        return FastUoWConfig(**values)

    @property
    def is_memory_db(self) -> bool:
        return self.db_url in ("sqlite://", "sqlite:///:memory:")

    def get_db_connect_args(self) -> dict[str, Any]:
        """Get db connection arguments for SQLAlchemy's engine creation.

        Example:
            For SQLite dbs, it could be: ::

                {'check_same_thread': False}
        """
        if self.db_url.startswith("sqlite"):
            return {"check_same_thread": False}
        return {}

    def get_db_poolclass(self) -> Optional[Type[Pool]]:
        """Get db poolclass argument for SQLAlchemy's engine creation.

        인메모리 SQLite 는 커넥션마다 DB가 달라지므로 :class:`StaticPool` 을 씁니다.
        """
        return StaticPool if self.is_memory_db else None

    def with_overrides(self, **kwargs: Any) -> FastUoWConfig:
        return replace(self, **kwargs)


_config: Optional[FastUoWConfig] = None


def get_config() -> FastUoWConfig:
    """전역 설정을 리턴합니다. 처음 호출될 때 현재 경로에서 로드합니다."""
    global _config  # pylint: disable=global-statement,invalid-name

    if not _config:
        set_config(FastUoWConfig.load_from_config())
    assert _config
    return _config


def set_config(config: Optional[FastUoWConfig]) -> None:
    """전역 설정을 교체합니다. ``None`` 이면 다음 :func:`get_config` 호출시 다시 로드합니다."""
    global _config  # pylint: disable=global-statement,invalid-name

    _config = config
    if config:
        set_log_level(config.log_level)
