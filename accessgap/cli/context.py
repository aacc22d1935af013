"""Builds the engine and its collaborators from configuration."""

from typing import Any, Dict

import click
import structlog

from accessgap.config.loader import get_config_value, load_config
from accessgap.core.discovery import DiscoveryService
from accessgap.core.hr import create_hr_directory_from_config
from accessgap.core.identity import AppIdentityCache, create_identity_client_from_config
from accessgap.core.reconciliation import ReconciliationEngine
from accessgap.core.remediation import RemediationOrchestrator
from accessgap.integrations.email import create_email_alerter_from_config
from accessgap.storage.sql import SQLCaseStore

logger = structlog.get_logger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///accessgap.db"


def build_engine(config: Dict[str, Any]) -> ReconciliationEngine:
    """Wire up the reconciliation engine described by ``config``."""
    cache = AppIdentityCache()
    client = create_identity_client_from_config(config, cache=cache)

    store = SQLCaseStore(
        get_config_value(config, "storage.database_url", DEFAULT_DATABASE_URL),
        initial_settings=config.get("settings") or {},
    )

    engine = ReconciliationEngine(
        store=store,
        discovery=DiscoveryService(client, max_workers=int(get_config_value(config, "discovery.max_workers", 5))),
        orchestrator=RemediationOrchestrator(client),
        hr=create_hr_directory_from_config(config),
        alerter=create_email_alerter_from_config(config),
        actor=get_config_value(config, "actor", "accessgap-cli"),
    )
    logger.info(
        "engine_built",
        identity_configured=client is not None,
        hr_configured=engine.hr is not None,
        email_configured=engine.alerter is not None,
    )
    return engine


def get_engine(ctx: click.Context) -> ReconciliationEngine:
    """Return the engine for this invocation, building it on first use."""
    obj = ctx.ensure_object(dict)
    if obj.get("engine") is None:
        config = load_config(obj.get("config_path"))
        obj["config"] = config
        obj["engine"] = build_engine(config)
    return obj["engine"]
