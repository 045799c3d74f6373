"""Operator defaults stored in ~/.amipromote/config.toml.

Holds the default region, where rollback records go, the Production flag
policy, the optional SSM pointer prefix and timeouts. Read with tomli (or
tomllib), written with tomlkit so hand-written comments survive `config set`.

Security:
- Config directory 0700, config file 0600 (fixed on load if looser)
- Custom config paths restricted to known directories
- Unknown keys and invalid values rejected
"""

import logging
import os
import tempfile
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

try:
    import tomli  # type: ignore[import]
except ImportError:
    # Python 3.11+ ships the same parser as tomllib
    try:
        import tomllib as tomli  # type: ignore[import]
    except ImportError as e:
        raise ImportError("toml library not available. Install with: pip install tomli") from e

import tomlkit

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"
REGION_ENV_VAR = "AWS_REGION"

# keep: leave Production=true on superseded images (rollback picks the newest flagged image)
# exclusive: clear Production on every other image of the environment when promoting
PRODUCTION_FLAG_POLICIES = ("keep", "exclusive")


class ConfigError(Exception):
    """Raised when configuration operations fail."""

    pass


@dataclass
class PromoteConfig:
    """amipromote configuration data."""

    default_region: str = DEFAULT_REGION
    records_dir: str | None = None  # defaults to ~/.amipromote/rollback-records
    production_flag_policy: str = "keep"
    pointer_parameter_prefix: str | None = None  # e.g. /golden-images
    lock_timeout: float = 10.0
    command_timeout: int = 60

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        data = asdict(self)
        # TOML has no null
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PromoteConfig":
        """Create from dictionary.

        Raises:
            ConfigError: If a value is invalid
        """
        policy = data.get("production_flag_policy", "keep")
        if policy not in PRODUCTION_FLAG_POLICIES:
            raise ConfigError(
                f"Invalid production_flag_policy '{policy}'. "
                f"Must be one of: {', '.join(PRODUCTION_FLAG_POLICIES)}"
            )

        try:
            lock_timeout = float(data.get("lock_timeout", 10.0))
            command_timeout = int(data.get("command_timeout", 60))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid timeout in config: {e}") from e

        return cls(
            default_region=data.get("default_region", DEFAULT_REGION),
            records_dir=data.get("records_dir"),
            production_flag_policy=policy,
            pointer_parameter_prefix=data.get("pointer_parameter_prefix"),
            lock_timeout=lock_timeout,
            command_timeout=command_timeout,
        )


def _restrict_permissions(path: Path) -> None:
    mode = path.stat().st_mode & 0o777
    if mode & 0o077:
        logger.warning(f"Config file {path} has insecure permissions {oct(mode)}; setting 0600")
        os.chmod(path, 0o600)


class ConfigManager:
    """Manage the amipromote configuration file.

    Configuration is stored at ~/.amipromote/config.toml with secure permissions.
    """

    DEFAULT_CONFIG_DIR = Path.home() / ".amipromote"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

    @classmethod
    def _allowed_dirs(cls) -> list[Path]:
        return [
            cls.DEFAULT_CONFIG_DIR.resolve(),
            Path.cwd().resolve(),
            Path(tempfile.gettempdir()).resolve(),
        ]

    @classmethod
    def _validate_config_path(cls, path: Path) -> Path:
        """Resolve a custom config path.

        Only paths under ~/.amipromote/, the current directory or the system
        temporary directory are accepted.

        Raises:
            ConfigError: If path is outside allowed directories
        """
        resolved = path.expanduser().resolve()
        if any(resolved.is_relative_to(allowed) for allowed in cls._allowed_dirs()):
            return resolved

        listing = "\n".join(f"  - {d}" for d in (cls.DEFAULT_CONFIG_DIR, Path.cwd()))
        raise ConfigError(
            f"Config path outside allowed directories: {resolved}\n"
            f"Allowed directories:\n{listing}"
        )

    @classmethod
    def get_config_path(cls, custom_path: str | None = None) -> Path:
        """Path of the config file to read.

        Raises:
            ConfigError: If a custom path is invalid or does not exist
        """
        if not custom_path:
            return cls.DEFAULT_CONFIG_FILE

        path = cls._validate_config_path(Path(custom_path))
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        return path

    @classmethod
    def ensure_config_dir(cls) -> Path:
        """Create ~/.amipromote (mode 0700) if needed.

        Raises:
            ConfigError: If directory creation fails
        """
        config_dir = cls.DEFAULT_CONFIG_DIR
        try:
            config_dir.mkdir(parents=True, exist_ok=True)
            os.chmod(config_dir, 0o700)
        except OSError as e:
            raise ConfigError(f"Failed to create config directory: {e}") from e
        return config_dir

    @classmethod
    def load_config(cls, custom_path: str | None = None) -> PromoteConfig:
        """Load configuration from file, or defaults when there is none.

        Raises:
            ConfigError: If the file cannot be read or holds invalid values
        """
        config_path = cls.get_config_path(custom_path)
        if not config_path.exists():
            logger.debug(f"No config at {config_path}, using defaults")
            return PromoteConfig()

        try:
            _restrict_permissions(config_path)
            with open(config_path, "rb") as f:
                data = tomli.load(f)  # type: ignore[attr-defined]
        except Exception as e:
            raise ConfigError(f"Failed to load config: {e}") from e

        logger.debug(f"Loaded config from {config_path}")
        return PromoteConfig.from_dict(data)

    @classmethod
    def save_config(cls, config: PromoteConfig, custom_path: str | None = None) -> Path:
        """Write configuration, keeping comments and ordering of an existing file.

        The file is written next to its destination and renamed over it.

        Returns:
            Path of the written file

        Raises:
            ConfigError: If saving fails
        """
        if custom_path:
            config_path = cls._validate_config_path(Path(custom_path))
        else:
            cls.ensure_config_dir()
            config_path = cls.DEFAULT_CONFIG_FILE

        staging_path = config_path.with_suffix(".tmp")
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            if config_path.exists():
                doc = tomlkit.parse(config_path.read_text())
            else:
                doc = tomlkit.document()
            doc.update(config.to_dict())

            staging_path.write_text(tomlkit.dumps(doc))
            os.chmod(staging_path, 0o600)
            staging_path.replace(config_path)
        except Exception as e:
            staging_path.unlink(missing_ok=True)
            raise ConfigError(f"Failed to save config: {e}") from e

        logger.debug(f"Saved config to {config_path}")
        return config_path

    @classmethod
    def update_config(cls, custom_path: str | None = None, **updates: Any) -> PromoteConfig:
        """Change individual keys and save.

        Raises:
            ConfigError: If a key is unknown, a value is invalid or saving fails
        """
        unknown = sorted(set(updates) - set(PromoteConfig.__dataclass_fields__))
        if unknown:
            raise ConfigError(f"Unknown config key: {', '.join(unknown)}")

        data = cls.load_config(custom_path).to_dict()
        data.update(updates)

        config = PromoteConfig.from_dict(data)
        cls.save_config(config, custom_path)
        return config

    @classmethod
    def get_region(cls, cli_value: str | None = None, custom_path: str | None = None) -> str:
        """Resolve the AWS region.

        Precedence: CLI option, AWS_REGION, config file, us-east-1.
        """
        if cli_value:
            return cli_value

        env_value = os.environ.get(REGION_ENV_VAR)
        if env_value:
            return env_value

        return cls.load_config(custom_path).default_region or DEFAULT_REGION

    @classmethod
    def get_records_dir(cls, config: PromoteConfig, cli_value: str | None = None) -> Path:
        """Resolve the rollback record directory."""
        if cli_value:
            return Path(cli_value).expanduser()
        if config.records_dir:
            return Path(config.records_dir).expanduser()
        return cls.DEFAULT_CONFIG_DIR / "rollback-records"

    @classmethod
    def get_lock_dir(cls) -> Path:
        return cls.DEFAULT_CONFIG_DIR / "locks"


__all__ = [
    "DEFAULT_REGION",
    "PRODUCTION_FLAG_POLICIES",
    "ConfigError",
    "ConfigManager",
    "PromoteConfig",
]
