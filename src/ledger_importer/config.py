"""Configuration loading and validation for the ledger importer.

The import configuration lives in ``config/import/providers.yaml`` inside
the ledger repository. It declares the statement directories and, for
every provider, an ordered list of detection rules plus a currency map.
Providers and rules are tried in exactly the order they are declared.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from ledger_importer.utils.logging_config import get_logger

logger = get_logger(__name__)

CONFIG_FILE = "config/import/providers.yaml"

REQUIRED_PATH_FIELDS = ("import", "pending", "done", "unrecognized", "rules")
REQUIRED_DETECTION_FIELDS = ("header", "currency_field")

NORMALIZE_SPACES_TO_DASHES = "spaces-to-dashes"
SUPPORTED_NORMALIZATIONS = {NORMALIZE_SPACES_TO_DASHES}
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """Exception raised for configuration errors."""

    pass


@dataclass(frozen=True)
class MetadataExtraction:
    """Where to find a metadata value in the rows preceding the header.

    Attributes:
        field: Placeholder name used in rename patterns (e.g. "account-number").
        row: Row index within the skipped preamble (0-based).
        column: Column index within that row (0-based).
        normalize: Optional normalization, currently only "spaces-to-dashes".
    """

    field: str
    row: int
    column: int
    normalize: Optional[str] = None


@dataclass(frozen=True)
class DetectionRule:
    """A single fingerprint for a provider's CSV export.

    Attributes:
        header: Exact comma-joined header signature.
        currency_field: Column holding the currency code.
        filename_pattern: Optional regex the filename must match.
        skip_rows: Rows preceding the header row.
        delimiter: Single-character field delimiter.
        rename_pattern: Optional output filename template with {placeholders}.
        metadata: Metadata extractions from the skipped rows.
    """

    header: str
    currency_field: str
    filename_pattern: Optional[str] = None
    skip_rows: int = 0
    delimiter: str = ","
    rename_pattern: Optional[str] = None
    metadata: tuple[MetadataExtraction, ...] = ()

    def matches_filename(self, filename: str) -> bool:
        """Check the optional filename pattern against a bare filename."""
        if self.filename_pattern is None:
            return True
        return re.search(self.filename_pattern, filename) is not None


@dataclass(frozen=True)
class ProviderRuleSet:
    """A named institution profile.

    Attributes:
        name: Provider name, used as the pending/done subdirectory.
        rules: Detection rules in declaration order.
        currencies: Raw currency code to normalized currency code.
    """

    name: str
    rules: tuple[DetectionRule, ...]
    currencies: dict[str, str] = field(default_factory=dict)

    def normalize_currency(self, raw_currency: str) -> str:
        """Map a raw currency code, falling back to its lower-cased form."""
        return self.currencies.get(raw_currency, raw_currency.lower())


@dataclass(frozen=True)
class ImportPaths:
    """Statement directories, relative to the repository root."""

    import_dir: str
    pending: str
    done: str
    unrecognized: str
    rules: str

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "ImportPaths":
        """Create from dictionary."""
        return cls(
            import_dir=str(data["import"]),
            pending=str(data["pending"]),
            done=str(data["done"]),
            unrecognized=str(data["unrecognized"]),
            rules=str(data["rules"]),
        )

    def resolve(self, base: Path) -> "ResolvedPaths":
        """Anchor every directory at a repository or worktree root."""
        return ResolvedPaths(
            import_dir=base / self.import_dir,
            pending=base / self.pending,
            done=base / self.done,
            unrecognized=base / self.unrecognized,
            rules=base / self.rules,
        )


@dataclass(frozen=True)
class ResolvedPaths:
    """Absolute statement directories for one checkout."""

    import_dir: Path
    pending: Path
    done: Path
    unrecognized: Path
    rules: Path


@dataclass
class LoggingConfig:
    """Configuration for logging.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Log file path, relative to the repository root.
    """

    level: str = "INFO"
    file: str = "ledger_importer.log"


@dataclass
class SuggestionConfig:
    """Configuration for account suggestions on unknown postings.

    Attributes:
        enabled: Whether to ask Claude for suggestions.
        model: Model name for the API client.
        budget_limit: Maximum spend per run in USD.
        batch_size: Postings per request.
    """

    enabled: bool = False
    model: str = "claude-sonnet-4-20250514"
    budget_limit: float = 1.00
    batch_size: int = 20


@dataclass
class ImportConfig:
    """Main configuration container.

    Attributes:
        paths: Statement directories.
        providers: Provider rule sets in declaration order.
        logging: Logging configuration.
        suggestions: Account suggestion configuration.
    """

    paths: ImportPaths
    providers: list[ProviderRuleSet]
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    suggestions: SuggestionConfig = field(default_factory=SuggestionConfig)

    def get_provider(self, name: str) -> Optional[ProviderRuleSet]:
        """Look up a provider by name."""
        for provider in self.providers:
            if provider.name == name:
                return provider
        return None


def _is_non_negative_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _validate_paths(data: object) -> ImportPaths:
    if not isinstance(data, dict):
        raise ConfigError("Invalid config: 'paths' must be a mapping")

    for name in REQUIRED_PATH_FIELDS:
        value = data.get(name)
        if not isinstance(value, str) or value == "":
            raise ConfigError(f"Invalid config: 'paths.{name}' is required")

    return ImportPaths.from_dict(data)


def _validate_metadata(prefix: str, data: object) -> tuple[MetadataExtraction, ...]:
    if not isinstance(data, list):
        raise ConfigError(f"{prefix}.metadata must be a list")

    extractions: list[MetadataExtraction] = []
    for i, meta in enumerate(data):
        entry = f"{prefix}.metadata[{i}]"
        if not isinstance(meta, dict):
            raise ConfigError(f"{entry} must be a mapping")
        name = meta.get("field")
        if not isinstance(name, str) or name == "":
            raise ConfigError(f"{entry}.field is required")
        if not _is_non_negative_int(meta.get("row")):
            raise ConfigError(f"{entry}.row must be a non-negative number")
        if not _is_non_negative_int(meta.get("column")):
            raise ConfigError(f"{entry}.column must be a non-negative number")
        normalize = meta.get("normalize")
        if normalize is not None and normalize not in SUPPORTED_NORMALIZATIONS:
            raise ConfigError(f"{entry}.normalize must be '{NORMALIZE_SPACES_TO_DASHES}'")

        extractions.append(
            MetadataExtraction(
                field=name,
                row=meta["row"],
                column=meta["column"],
                normalize=normalize,
            )
        )
    return tuple(extractions)


def _validate_detection_rule(provider_name: str, index: int, data: object) -> DetectionRule:
    prefix = f"Invalid config: provider '{provider_name}' detect[{index}]"
    if not isinstance(data, dict):
        raise ConfigError(f"{prefix} must be a mapping")

    for name in REQUIRED_DETECTION_FIELDS:
        value = data.get(name)
        if not isinstance(value, str) or value == "":
            raise ConfigError(f"{prefix}.{name} is required")

    filename_pattern = data.get("filename_pattern")
    if filename_pattern is not None:
        if not isinstance(filename_pattern, str):
            raise ConfigError(f"{prefix}.filename_pattern must be a string")
        try:
            re.compile(filename_pattern)
        except re.error as e:
            raise ConfigError(f"{prefix}.filename_pattern is not a valid regex: {e}") from e

    skip_rows = data.get("skip_rows", 0)
    if not _is_non_negative_int(skip_rows):
        raise ConfigError(f"{prefix}.skip_rows must be a non-negative number")

    delimiter = data.get("delimiter", ",")
    if not isinstance(delimiter, str) or len(delimiter) != 1:
        raise ConfigError(f"{prefix}.delimiter must be a single character")

    rename_pattern = data.get("rename_pattern")
    if rename_pattern is not None and not isinstance(rename_pattern, str):
        raise ConfigError(f"{prefix}.rename_pattern must be a string")

    metadata: tuple[MetadataExtraction, ...] = ()
    if data.get("metadata") is not None:
        metadata = _validate_metadata(prefix, data["metadata"])

    return DetectionRule(
        header=data["header"],
        currency_field=data["currency_field"],
        filename_pattern=filename_pattern,
        skip_rows=skip_rows,
        delimiter=delimiter,
        rename_pattern=rename_pattern,
        metadata=metadata,
    )


def _validate_provider(name: str, data: object) -> ProviderRuleSet:
    prefix = f"Invalid config for provider '{name}'"
    if not isinstance(data, dict):
        raise ConfigError(f"{prefix}: expected a mapping")

    detect = data.get("detect")
    if not isinstance(detect, list) or not detect:
        raise ConfigError(f"{prefix}: 'detect' must be a non-empty list")
    rules = tuple(_validate_detection_rule(name, i, rule) for i, rule in enumerate(detect))

    currencies_data = data.get("currencies")
    if not isinstance(currencies_data, dict):
        raise ConfigError(f"{prefix}: 'currencies' must be a mapping")

    currencies: dict[str, str] = {}
    for raw, normalized in currencies_data.items():
        if not isinstance(normalized, str):
            raise ConfigError(f"{prefix}: currencies.{raw} must be a string")
        currencies[str(raw)] = normalized

    if not currencies:
        raise ConfigError(f"{prefix}: 'currencies' must contain at least one mapping")

    return ProviderRuleSet(name=str(name), rules=rules, currencies=currencies)


def _validate_logging(data: object) -> LoggingConfig:
    if not isinstance(data, dict):
        raise ConfigError("Invalid config: 'logging' must be a mapping")

    level = data.get("level", "INFO")
    if not isinstance(level, str) or level.upper() not in LOG_LEVELS:
        raise ConfigError(f"Invalid config: 'logging.level' must be one of {', '.join(LOG_LEVELS)}")

    log_file = data.get("file", "ledger_importer.log")
    if not isinstance(log_file, str) or log_file == "":
        raise ConfigError("Invalid config: 'logging.file' must be a non-empty string")

    return LoggingConfig(level=level.upper(), file=log_file)


def _validate_suggestions(data: object) -> SuggestionConfig:
    if not isinstance(data, dict):
        raise ConfigError("Invalid config: 'suggestions' must be a mapping")

    defaults = SuggestionConfig()

    enabled = data.get("enabled", defaults.enabled)
    if not isinstance(enabled, bool):
        raise ConfigError("Invalid config: 'suggestions.enabled' must be true or false")

    model = data.get("model", defaults.model)
    if not isinstance(model, str) or model == "":
        raise ConfigError("Invalid config: 'suggestions.model' must be a non-empty string")

    budget_limit = data.get("budget_limit", defaults.budget_limit)
    if isinstance(budget_limit, bool) or not isinstance(budget_limit, (int, float)) or budget_limit < 0:
        raise ConfigError("Invalid config: 'suggestions.budget_limit' must be a non-negative number")

    batch_size = data.get("batch_size", defaults.batch_size)
    if not _is_non_negative_int(batch_size) or batch_size == 0:
        raise ConfigError("Invalid config: 'suggestions.batch_size' must be a positive integer")

    return SuggestionConfig(
        enabled=enabled,
        model=model,
        budget_limit=float(budget_limit),
        batch_size=batch_size,
    )


def load_yaml_file(path: Path) -> dict[str, object]:
    """Load a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content.

    Raises:
        ConfigError: If the file is missing, is invalid YAML, or is not a mapping.
    """
    if not path.exists():
        raise ConfigError(
            f"Configuration file not found: {CONFIG_FILE}. "
            "Please create this file to configure statement imports."
        )

    try:
        with open(path, encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse {CONFIG_FILE}: {e}") from e

    if not isinstance(content, dict):
        raise ConfigError(f"Invalid config: {CONFIG_FILE} must contain a YAML mapping")

    return content


def parse_import_config(data: dict[str, object]) -> ImportConfig:
    """Validate a parsed configuration document.

    Args:
        data: Parsed YAML mapping.

    Returns:
        Validated ImportConfig.

    Raises:
        ConfigError: With a field-specific message on the first problem found.
    """
    if not data.get("paths"):
        raise ConfigError("Invalid config: 'paths' section is required")
    paths = _validate_paths(data["paths"])

    providers_data = data.get("providers")
    if not isinstance(providers_data, dict):
        raise ConfigError("Invalid config: 'providers' section is required")
    if not providers_data:
        raise ConfigError("Invalid config: 'providers' section must contain at least one provider")

    # dicts keep YAML declaration order, which is the detection order
    providers = [_validate_provider(name, provider) for name, provider in providers_data.items()]

    logging_config = LoggingConfig()
    if data.get("logging") is not None:
        logging_config = _validate_logging(data["logging"])

    suggestions = SuggestionConfig()
    if data.get("suggestions") is not None:
        suggestions = _validate_suggestions(data["suggestions"])

    return ImportConfig(
        paths=paths,
        providers=providers,
        logging=logging_config,
        suggestions=suggestions,
    )


def load_import_config(directory: Path) -> ImportConfig:
    """Load and validate the import configuration of a ledger repository.

    Args:
        directory: Repository root containing ``config/import/providers.yaml``.

    Returns:
        Validated ImportConfig.

    Raises:
        ConfigError: If the file is missing, malformed or incomplete.
    """
    config_path = Path(directory) / CONFIG_FILE
    config = parse_import_config(load_yaml_file(config_path))
    logger.info(f"Loaded {len(config.providers)} providers from {config_path}")
    return config
