"""
Shared test fixtures and configuration for amipromote tests.

This module provides common fixtures used across all test types:
- Isolated config directory (never touches ~/.amipromote)
- Image factories
- Controllers wired to mocked collaborators
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from amipromote.config_manager import ConfigManager
from amipromote.fleet_manager import FleetManager
from amipromote.image_registry import ImageInfo, ImageRegistry, ImageState
from amipromote.interaction_handler import MockInteractionHandler
from amipromote.launch_templates import LaunchTemplateManager
from amipromote.promotion import PromotionController
from amipromote.retry_config import reset_retry_config
from amipromote.rollback_records import RollbackRecordStore

T0 = datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)
FROZEN_NOW = datetime(2025, 3, 10, 8, 30, 15, tzinfo=UTC)


# ============================================================================
# ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path, monkeypatch):
    """Point the config directory at a temporary path for every test.

    Tests must never read or modify the operator's real ~/.amipromote.
    """
    config_dir = tmp_path / ".amipromote"
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_DIR", config_dir)
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_FILE", config_dir / "config.toml")
    monkeypatch.delenv("AWS_REGION", raising=False)
    monkeypatch.setenv("AMIPROMOTE_RETRY_INITIAL_DELAY", "0")
    monkeypatch.setenv("AMIPROMOTE_RETRY_JITTER_ENABLED", "false")
    reset_retry_config()
    yield config_dir
    reset_retry_config()


# ============================================================================
# IMAGE FACTORIES
# ============================================================================


@pytest.fixture
def make_image():
    """Factory for ImageInfo objects.

    Images are created hours apart by default so ordering is unambiguous.
    """

    def _make(
        image_id: str,
        hours: int = 0,
        state: ImageState = ImageState.AVAILABLE,
        environment: str = "staging",
        production: bool = False,
        **tags: str,
    ) -> ImageInfo:
        image_tags = {"Environment": environment, **tags}
        if production:
            image_tags["Production"] = "true"
        return ImageInfo(
            id=image_id,
            state=state,
            creation_date=T0 + timedelta(hours=hours),
            tags=image_tags,
            name=f"golden-{image_id}",
            description=f"Golden image {image_id}",
        )

    return _make


# ============================================================================
# CONTROLLER FIXTURES
# ============================================================================


@pytest.fixture
def mock_registry():
    return MagicMock(spec=ImageRegistry)


@pytest.fixture
def mock_templates():
    return MagicMock(spec=LaunchTemplateManager)


@pytest.fixture
def mock_fleet():
    return MagicMock(spec=FleetManager)


@pytest.fixture
def records_store(tmp_path):
    return RollbackRecordStore(tmp_path / "rollback-records")


@pytest.fixture
def interaction():
    return MockInteractionHandler()


@pytest.fixture
def controller(mock_registry, mock_templates, mock_fleet, records_store, interaction):
    """PromotionController with mocked AWS collaborators and a frozen clock."""
    return PromotionController(
        registry=mock_registry,
        templates=mock_templates,
        fleet=mock_fleet,
        records=records_store,
        handler=interaction,
        clock=lambda: FROZEN_NOW,
    )
