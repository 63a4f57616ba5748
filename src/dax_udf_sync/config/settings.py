"""
Configuration loader for dax-udf-sync

Resolves the target repository, branch and folder from defaults, an optional
YAML config file and environment variables, and fetches the GitHub token from
the environment, a local secrets file or AWS Secrets Manager with exponential
backoff and structured logging redaction.
"""

import json
import logging
import os
import time
from typing import Dict, Any, Optional, List

import boto3
import jsonschema
import yaml
from botocore.exceptions import ClientError

from dax_udf_sync.utils.logger import install_filter

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Exception raised for configuration-related errors."""

    pass


DEFAULT_CONFIG_FILE = "udf-sync.yaml"
DEFAULT_API_URL = "https://api.github.com"
DEFAULT_REGION = "us-east-1"

# Environment variables holding the token directly, checked in order
TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")

# For local development with a dummy credentials file
USE_LOCAL_SECRETS = os.getenv("USE_LOCAL_SECRETS_FILE", "false").lower() == "true"
LOCAL_SECRETS_FILE = os.getenv("LOCAL_SECRETS_FILE_PATH", ".local/secrets.json")

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "repo": {"type": "string", "pattern": r"^[\w.-]+/[\w.-]+$"},
        "branch": {"type": "string", "minLength": 1},
        "path": {"type": "string"},
        "api_url": {"type": "string", "pattern": "^https?://"},
        "extensions": {
            "type": "array",
            "items": {"type": "string", "pattern": r"^\.\w+$"},
            "minItems": 1,
        },
        "timeout": {"type": "number", "exclusiveMinimum": 0},
        "max_retries": {"type": "integer", "minimum": 1},
        "backoff_base": {"type": "number", "minimum": 0},
        "token_secret_id": {"type": "string", "minLength": 1},
        "aws_region": {"type": "string", "minLength": 1},
        "commit_messages": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "add": {"type": "string", "minLength": 1},
                "update": {"type": "string", "minLength": 1},
            },
        },
        "model": {"type": "string"},
        "functions_dir": {"type": "string"},
    },
}

# Environment variable -> settings attribute
ENV_OVERRIDES = {
    "GITHUB_REPOSITORY": "repo",
    "GITHUB_BRANCH": "branch",
    "UDF_SYNC_PATH": "functions_path",
    "GITHUB_API_URL": "api_url",
    "GITHUB_TOKEN_SECRET_ID": "token_secret_id",
    "AWS_REGION": "aws_region",
    "UDF_SYNC_MODEL": "model_path",
    "UDF_SYNC_FUNCTIONS_DIR": "functions_dir",
}

_TOKEN_CACHE: Optional[str] = None


class SecretRedactionFilter(logging.Filter):
    """
    Logging filter that redacts secret values from log records.
    Replaces secret substrings with ***REDACTED*** to prevent accidental leakage.
    """

    def __init__(self, secrets: Optional[Dict[str, Any]] = None):
        """
        Initialize filter with secrets to redact.

        Args:
            secrets: Dictionary of secrets to redact (values will be masked)
        """
        super().__init__()
        self.secrets = secrets or {}
        self.redacted_values: set[str] = set()
        if self.secrets:
            self._extract_secret_values(self.secrets)

    def _extract_secret_values(self, obj: Any, max_depth: int = 5) -> None:
        """Recursively extract all secret values from nested structures."""
        if max_depth <= 0:
            return

        if isinstance(obj, dict):
            for value in obj.values():
                self._extract_secret_values(value, max_depth - 1)
        elif isinstance(obj, (list, tuple)):
            for item in obj:
                self._extract_secret_values(item, max_depth - 1)
        elif isinstance(obj, str) and obj and len(obj) > 3:
            # Only redact strings with meaningful length
            self.redacted_values.add(obj)

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter and redact log record."""
        try:
            record.msg = self._redact_string(str(record.msg))
            if record.args:
                if isinstance(record.args, dict):
                    record.args = {k: self._redact_string(str(v)) for k, v in record.args.items()}
                elif isinstance(record.args, (list, tuple)):
                    record.args = tuple(self._redact_string(str(arg)) for arg in record.args)
        except Exception as e:
            logger.warning(f"Error during secret redaction: {e}")
        return True

    def _redact_string(self, text: str) -> str:
        """Redact all secret values from string."""
        for secret in self.redacted_values:
            if secret in text:
                text = text.replace(secret, "***REDACTED***")
        return text


class Settings:
    """
    Sync configuration.

    Precedence (lowest to highest): built-in defaults, YAML config file,
    environment variables, explicit overrides (CLI flags).
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize and resolve settings.

        Args:
            config_path: YAML config file. Defaults to ``UDF_SYNC_CONFIG`` or
                ``udf-sync.yaml`` in the working directory (optional).
            overrides: Attribute values that win over every other source;
                ``None`` values are ignored.

        Raises:
            ConfigurationError: If the config file is invalid
        """
        self.repo: Optional[str] = None
        self.branch = "main"
        self.functions_path = "functions"
        self.api_url = DEFAULT_API_URL
        self.extensions: List[str] = [".dax"]
        self.timeout: float = 30
        self.max_retries = 3
        self.backoff_base = 1.0
        self.token_secret_id: Optional[str] = None
        self.aws_region = DEFAULT_REGION
        self.add_message = "Add {name}"
        self.update_message = "Update {name}"
        self.model_path: Optional[str] = None
        self.functions_dir: Optional[str] = None
        self.config_path: Optional[str] = None

        explicit = config_path or os.getenv("UDF_SYNC_CONFIG")
        if explicit:
            self.load_config_file(explicit)
        elif os.path.exists(DEFAULT_CONFIG_FILE):
            self.load_config_file(DEFAULT_CONFIG_FILE)

        self._apply_env()
        for attribute, value in (overrides or {}).items():
            if value is not None:
                setattr(self, attribute, value)
        self.functions_path = self.functions_path.strip("/")

    def load_config_file(self, path: str) -> None:
        """
        Load settings from a YAML file and validate it against ``CONFIG_SCHEMA``.

        Args:
            path: Path to the YAML config file

        Raises:
            ConfigurationError: If the file is missing, not YAML, or invalid
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Config file not found: {path}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if not config:
            logger.warning(f"Empty config file: {path}")
            self.config_path = path
            return

        try:
            jsonschema.validate(instance=config, schema=CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise ConfigurationError(f"Config file {path} failed validation: {e.message}") from e

        simple = {
            "repo": "repo",
            "branch": "branch",
            "path": "functions_path",
            "api_url": "api_url",
            "extensions": "extensions",
            "timeout": "timeout",
            "max_retries": "max_retries",
            "backoff_base": "backoff_base",
            "token_secret_id": "token_secret_id",
            "aws_region": "aws_region",
            "model": "model_path",
            "functions_dir": "functions_dir",
        }
        for key, attribute in simple.items():
            if key in config:
                setattr(self, attribute, config[key])

        messages = config.get("commit_messages", {})
        self.add_message = messages.get("add", self.add_message)
        self.update_message = messages.get("update", self.update_message)
        self.config_path = path
        logger.debug(f"Loaded configuration from {path}")

    def _apply_env(self) -> None:
        for env_var, attribute in ENV_OVERRIDES.items():
            value = os.getenv(env_var)
            if value:
                setattr(self, attribute, value)

    def validate(self) -> None:
        """
        Check that the settings describe a usable target.

        Raises:
            ConfigurationError: If the repository is missing or malformed
        """
        if not self.repo:
            raise ConfigurationError(
                "No repository configured. Set GITHUB_REPOSITORY, pass --repo, "
                f"or add 'repo' to {DEFAULT_CONFIG_FILE}"
            )
        if self.repo.count("/") != 1 or not all(self.repo.split("/")):
            raise ConfigurationError(f"Repository must be in owner/name form, got '{self.repo}'")

    def commit_message(self, name: str, exists: bool) -> str:
        """Commit message for uploading function ``name``."""
        template = self.update_message if exists else self.add_message
        return template.replace("{name}", name)

    def remote_path_for(self, name: str) -> str:
        """Repository path used when a function does not exist remotely yet."""
        extension = self.extensions[0] if self.extensions else ".dax"
        if self.functions_path:
            return f"{self.functions_path}/{name}{extension}"
        return f"{name}{extension}"

    def to_dict(self) -> Dict[str, Any]:
        """Resolved settings without secrets."""
        return {
            "repo": self.repo,
            "branch": self.branch,
            "path": self.functions_path,
            "api_url": self.api_url,
            "extensions": list(self.extensions),
            "timeout": self.timeout,
            "max_retries": self.max_retries,
            "backoff_base": self.backoff_base,
            "token_secret_id": self.token_secret_id,
            "aws_region": self.aws_region,
            "model": self.model_path,
            "functions_dir": self.functions_dir,
            "config_file": self.config_path,
        }

    @staticmethod
    def _get_secret_value(
        secret_id: str,
        region_name: str = DEFAULT_REGION,
        max_retries: int = 3,
        base_wait: float = 1.0,
    ) -> Dict[str, Any]:
        """
        Fetch secret from Secrets Manager with exponential backoff.

        Plain-string secrets are returned as ``{"token": <value>}``.

        Args:
            secret_id: Secret identifier in Secrets Manager
            region_name: AWS region holding the secret
            max_retries: Maximum number of retry attempts
            base_wait: Base wait time in seconds for exponential backoff

        Returns:
            Parsed secret as dictionary

        Raises:
            RuntimeError: If secret cannot be retrieved after retries
        """
        client = boto3.client("secretsmanager", region_name=region_name)

        for attempt in range(max_retries):
            try:
                response = client.get_secret_value(SecretId=secret_id)
                secret_string = response.get("SecretString")
                if not secret_string:
                    raise ValueError(f"Secret {secret_id} has empty value")
                if secret_string.lstrip().startswith("{"):
                    return json.loads(secret_string)
                return {"token": secret_string.strip()}
            except ClientError as e:
                error_code = e.response["Error"]["Code"]
                if error_code == "ResourceNotFoundException":
                    raise RuntimeError(
                        f"Secret '{secret_id}' not found in Secrets Manager. "
                        f"Please verify the secret exists in region {region_name}"
                    ) from e
                elif error_code in ["AccessDeniedException", "UnauthorizedOperation"]:
                    raise RuntimeError(
                        f"Access denied to secret '{secret_id}'. "
                        f"Verify the caller has secretsmanager:GetSecretValue permission"
                    ) from e
                elif error_code == "DecryptionFailure":
                    raise RuntimeError(
                        f"Failed to decrypt secret '{secret_id}'. Verify KMS key permissions"
                    ) from e
                else:
                    if attempt < max_retries - 1:
                        wait_time = base_wait * (2**attempt)
                        logger.warning(
                            f"Transient error fetching secret {secret_id}: {error_code}. "
                            f"Retrying in {wait_time}s (attempt {attempt + 1}/{max_retries})"
                        )
                        time.sleep(wait_time)
                    else:
                        raise RuntimeError(
                            f"Failed to retrieve secret '{secret_id}' after {max_retries} attempts: {error_code}"
                        ) from e
            except json.JSONDecodeError as e:
                raise RuntimeError(f"Secret '{secret_id}' contains invalid JSON: {str(e)}") from e
            except ValueError as e:
                raise RuntimeError(str(e)) from e
            except Exception as e:
                # Missing credentials, endpoint failures and other botocore errors
                if attempt < max_retries - 1:
                    wait_time = base_wait * (2**attempt)
                    logger.warning(
                        f"Unexpected error fetching secret {secret_id}: {str(e)}. "
                        f"Retrying in {wait_time}s (attempt {attempt + 1}/{max_retries})"
                    )
                    time.sleep(wait_time)
                else:
                    raise RuntimeError(
                        f"Unexpected error retrieving secret '{secret_id}': {str(e)}"
                    ) from e

        raise RuntimeError(
            f"Failed to retrieve secret '{secret_id}' - exhausted all retry attempts"
        )

    @staticmethod
    def _load_from_local_file(filepath: str) -> Dict[str, Any]:
        """
        Load secrets from local JSON file for development.

        Args:
            filepath: Path to local secrets JSON file

        Returns:
            Dictionary of secrets

        Raises:
            RuntimeError: If file cannot be read or contains invalid JSON
        """
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            raise RuntimeError(
                f"Local secrets file not found: {filepath}. "
                f"Set GITHUB_TOKEN or provide USE_LOCAL_SECRETS_FILE=true and LOCAL_SECRETS_FILE_PATH"
            )
        except json.JSONDecodeError as e:
            raise RuntimeError(f"Local secrets file contains invalid JSON: {str(e)}")

    def load_github_token(self) -> str:
        """
        Resolve the GitHub token.

        Priority:
        1. GITHUB_TOKEN / GH_TOKEN environment variables
        2. Local secrets file (USE_LOCAL_SECRETS_FILE=true, key ``github.token``)
        3. Secrets Manager secret named by ``token_secret_id``

        Returns:
            Token string

        Raises:
            ConfigurationError: If no source provides a token
        """
        global _TOKEN_CACHE

        for env_var in TOKEN_ENV_VARS:
            value = os.getenv(env_var)
            if value and value.strip():
                return value.strip()

        if _TOKEN_CACHE:
            return _TOKEN_CACHE

        if USE_LOCAL_SECRETS:
            try:
                token = self._load_from_local_file(LOCAL_SECRETS_FILE).get("github", {}).get("token")
            except RuntimeError as e:
                raise ConfigurationError(str(e)) from e
            if token:
                _TOKEN_CACHE = token
                return token

        if self.token_secret_id:
            try:
                credentials = Settings._get_secret_value(self.token_secret_id, self.aws_region)
            except RuntimeError as e:
                raise ConfigurationError(str(e)) from e
            token = credentials.get("token") or credentials.get("github_token")
            if not token:
                raise ConfigurationError(
                    f"Secret '{self.token_secret_id}' has no 'token' key. "
                    f"Got: {list(credentials.keys())}"
                )
            _TOKEN_CACHE = token
            return token

        raise ConfigurationError(
            "No GitHub token found. Set GITHUB_TOKEN (or GH_TOKEN), a local secrets file, "
            "or GITHUB_TOKEN_SECRET_ID for AWS Secrets Manager"
        )

    def build_redaction_filter(self) -> SecretRedactionFilter:
        """Create a redaction filter masking the resolved token, if any."""
        secrets: Dict[str, Any] = {}
        try:
            secrets["github_token"] = self.load_github_token()
        except ConfigurationError:
            # Filter is still created without a token to mask
            pass
        return SecretRedactionFilter(secrets)

    def setup_redaction_filter(self, logger_instance: logging.Logger) -> None:
        """
        Configure logger with secret redaction filter.

        Args:
            logger_instance: Logger instance to configure
        """
        try:
            logger_instance.addFilter(self.build_redaction_filter())
        except Exception as e:
            logger.warning(f"Failed to setup redaction filter: {e}")


def clear_token_cache() -> None:
    """Forget a token resolved from a secrets file or Secrets Manager."""
    global _TOKEN_CACHE
    _TOKEN_CACHE = None


def setup_logging_redaction(settings: Settings) -> None:
    """Setup logging redaction for the root logger and every structured logger."""
    redaction_filter = settings.build_redaction_filter()
    logging.getLogger().addFilter(redaction_filter)
    install_filter(redaction_filter)
