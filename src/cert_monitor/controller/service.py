"""Run-once and continuous modes wired from configuration files."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from cert_monitor.certificates.cache import CertCache
from cert_monitor.certificates.persister import ArtifactPersister
from cert_monitor.config import DEFAULT_CONFIG_PATH, CertConfig, MainConfig, load_main_config
from cert_monitor.controller.loop import SchedulingLoop
from cert_monitor.controller.orchestrator import BatchOptions, BatchResult, RenewalOrchestrator
from cert_monitor.controller.reload import Reloader, ShellReloader
from cert_monitor.vault.client import VaultClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunPlan:
    """Configuration snapshot a batch runs against."""

    main_config: MainConfig
    cert_configs: list[CertConfig]


def load_plan(
    config_path: Path | str = DEFAULT_CONFIG_PATH,
    cert_config_path: Optional[Path | str] = None,
) -> RunPlan:
    """Read the main configuration and the certificate configurations it names.

    Raises
    ------
    ConfigError
        If any configuration file is missing or invalid.
    """
    main_config = load_main_config(config_path)
    logger.info("Main configuration '%s' loaded successfully.", config_path)
    cert_configs = main_config.load_cert_configs(cert_config_path)
    logger.info("Loaded %d certificate configuration(s).", len(cert_configs))
    return RunPlan(main_config=main_config, cert_configs=cert_configs)


def execute(
    plan: RunPlan,
    options: BatchOptions = BatchOptions(),
    reloader: Optional[Reloader] = None,
) -> BatchResult:
    """Run one renewal batch for *plan*."""
    cache = CertCache(plan.main_config.downloaded_cert_path)
    with VaultClient(plan.main_config.vault) as client:
        orchestrator = RenewalOrchestrator(
            cache=cache,
            client=client,
            persister=ArtifactPersister(cache),
            reloader=reloader or ShellReloader(),
        )
        return orchestrator.run_batch(plan.cert_configs, options)


def exec_once(
    config_path: Path | str = DEFAULT_CONFIG_PATH,
    no_reload: bool = False,
    cert_config_path: Optional[Path | str] = None,
    fail_fast: Optional[bool] = None,
) -> BatchResult:
    """Run a single batch.

    A run restricted to one certificate configuration fails fast unless
    *fail_fast* says otherwise.
    """
    plan = load_plan(config_path, cert_config_path)
    if fail_fast is None:
        fail_fast = cert_config_path is not None
    return execute(plan, BatchOptions(no_reload=no_reload, fail_fast=fail_fast))


def exec_loop(
    config_path: Path | str = DEFAULT_CONFIG_PATH,
    no_reload: bool = False,
) -> int:
    """Run batches on the configured interval until SIGINT or SIGTERM.

    Returns the number of batches run.
    """
    plan = load_plan(config_path)
    options = BatchOptions(no_reload=no_reload)
    loop: SchedulingLoop[RunPlan] = SchedulingLoop(
        load_plan=lambda: load_plan(config_path),
        run_plan=lambda current: execute(current, options),
        interval=plan.main_config.check_interval,
        initial_plan=plan,
    )
    loop.install_signal_handlers()
    return loop.run()
