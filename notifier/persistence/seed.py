"""Seeding of default templates and settings from YAML."""

import logging
from pathlib import Path
from typing import Optional, Tuple

import yaml
from pydantic import ValidationError

from notifier.domain.models import NotificationSettings, Template

from .exceptions import PersistenceError
from .repositories import SqlNotificationSettingsRepository, SqlTemplateRepository

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATES_PATH = Path(__file__).with_name("default_templates.yaml")


async def seed_defaults(
    template_repo: SqlTemplateRepository,
    settings_repo: SqlNotificationSettingsRepository,
    path: Optional[Path] = None,
) -> Tuple[int, int]:
    """Load templates and settings from YAML and save them.

    Args:
        template_repo: Repository that receives the templates
        settings_repo: Repository that receives the settings
        path: YAML file (defaults to the packaged default_templates.yaml)

    Returns:
        Tuple of (templates saved, settings saved)

    Raises:
        PersistenceError: If the file cannot be read or holds invalid entries
    """
    source = path or DEFAULT_TEMPLATES_PATH
    try:
        with open(source, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise PersistenceError(f"Failed to read seed file {source}: {e}") from e

    try:
        templates = [Template.model_validate(item) for item in data.get("templates", [])]
        settings = [
            NotificationSettings.model_validate(item) for item in data.get("settings", [])
        ]
    except ValidationError as e:
        raise PersistenceError(f"Invalid seed data in {source}: {e}") from e

    for template in templates:
        await template_repo.save(template)
    for entry in settings:
        await settings_repo.save(entry)

    logger.info(
        f"Seeded {len(templates)} templates and {len(settings)} settings from {source}",
        extra={"event": "database.seeded"},
    )
    return len(templates), len(settings)
