# src/dcdn/runtime/executor_boot.py

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dcdn.runtime.executor import DcdnExecutor


@dataclass
class ExecutorBootConfig:
    db_path: str
    instance_id: str


def boot_config_from_env() -> ExecutorBootConfig:
    return ExecutorBootConfig(
        db_path=os.environ.get("DCDN_DB_PATH", "./data/dcdn.db"),
        instance_id=os.environ.get("DCDN_INSTANCE_ID", "dcdn-dev"),
    )


def build_executor(cfg: Optional[ExecutorBootConfig] = None) -> DcdnExecutor:
    """
    Build a DcdnExecutor from an explicit boot config or, if omitted,
    from environment variables.

    dcdn.api.app calls this with no args in production.
    """
    c = cfg or boot_config_from_env()
    return DcdnExecutor(db_path=c.db_path, instance_id=c.instance_id)
