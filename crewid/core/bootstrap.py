from __future__ import annotations

import os
import time
from typing import Callable, Optional

from crewid.core.config.manager import ConfigManager
from crewid.core.config.paths import ConfigFsPaths
from crewid.core.identity.io import IdentityStatePaths
from crewid.core.identity.store import IdentityStore
from crewid.core.logger import setup_logging
from crewid.core.ops_log import OpsLogger


def build_identity_store(root: str = ".", *, logger=None, clock: Callable[[], float] = time.time, config_manager: Optional[ConfigManager] = None) -> IdentityStore:
    """
    Construct a configured, loaded store rooted at `root`.

    Callers own the instance and pass it to whatever needs it.
    """
    fs = ConfigFsPaths(root=root)
    owns_logger = logger is None
    if owns_logger:
        logger = setup_logging(fs.logs_dir)
    cm = config_manager or ConfigManager(fs=fs, logger=logger)
    cfg = cm.load_all()
    if owns_logger:
        logger = setup_logging(fs.logs_dir, level=cfg.identity.log_level)
    store = IdentityStore(
        paths=IdentityStatePaths(state_dir=fs.resolve(cfg.identity.state_dir)),
        cfg=cfg.identity,
        ops=OpsLogger(path=os.path.join(fs.logs_dir, "identity_ops.jsonl")),
        logger=logger,
        clock=clock,
    )
    store.load()
    return store
