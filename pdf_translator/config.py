"""
Centralized configuration for the translation pipeline
"""
import os
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

from pdf_translator.core.exceptions import ConfigurationError

# Setup debug logger for configuration
_config_logger = logging.getLogger('config')

# Load .env from the working directory if there is one
_env_file = Path.cwd() / '.env'
if _env_file.exists():
    load_dotenv(_env_file)

# Batching
MAX_BATCH_SIZE = int(os.getenv('MAX_BATCH_SIZE', '10'))
MAX_TOKENS_PER_BATCH = int(os.getenv('MAX_TOKENS_PER_BATCH', '2000'))
BATCH_CONCURRENCY = int(os.getenv('BATCH_CONCURRENCY', '3'))
INTER_BATCH_DELAY_MS = int(os.getenv('INTER_BATCH_DELAY_MS', '100'))

# Rough token heuristic shared by the batch builder and cost estimates
CHARS_PER_TOKEN = 4

# Recovery
RECOVERY_DIR = os.getenv('RECOVERY_DIR', './translation_recovery')
AUTOSAVE_INTERVAL_SECONDS = float(os.getenv('AUTOSAVE_INTERVAL_SECONDS', '30'))
RECOVERY_MAX_AGE_DAYS = int(os.getenv('RECOVERY_MAX_AGE_DAYS', '7'))

# Quality checks
MIN_LENGTH_RATIO = float(os.getenv('MIN_LENGTH_RATIO', '0.5'))
MAX_LENGTH_RATIO = float(os.getenv('MAX_LENGTH_RATIO', '2.0'))
LENGTH_DEVIATION_THRESHOLD = 0.3

# Provider
API_ENDPOINT = os.getenv('API_ENDPOINT', 'https://api.openai.com/v1/chat/completions')
DEFAULT_MODEL = os.getenv('DEFAULT_MODEL', 'gpt-4o-mini')
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY', '')
REQUEST_TIMEOUT = int(os.getenv('REQUEST_TIMEOUT', '120'))
MAX_TRANSLATION_ATTEMPTS = int(os.getenv('MAX_TRANSLATION_ATTEMPTS', '3'))
RETRY_DELAY_SECONDS = float(os.getenv('RETRY_DELAY_SECONDS', '1'))
PROVIDER_CHUNK_SIZE = 10  # texts per provider request inside translate_batch

DEBUG_MODE = os.getenv('DEBUG_MODE', 'false').lower() == 'true'

if DEBUG_MODE:
    logging.basicConfig(level=logging.DEBUG, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    _config_logger.setLevel(logging.DEBUG)
    _config_logger.debug("=" * 60)
    _config_logger.debug("LOADED CONFIGURATION VALUES:")
    _config_logger.debug(f"   MAX_BATCH_SIZE: {MAX_BATCH_SIZE}")
    _config_logger.debug(f"   MAX_TOKENS_PER_BATCH: {MAX_TOKENS_PER_BATCH}")
    _config_logger.debug(f"   BATCH_CONCURRENCY: {BATCH_CONCURRENCY}")
    _config_logger.debug(f"   INTER_BATCH_DELAY_MS: {INTER_BATCH_DELAY_MS}")
    _config_logger.debug(f"   RECOVERY_DIR: {RECOVERY_DIR}")
    _config_logger.debug(f"   API_ENDPOINT: {API_ENDPOINT}")
    _config_logger.debug(f"   DEFAULT_MODEL: {DEFAULT_MODEL}")
    _config_logger.debug(f"   OPENAI_API_KEY: {'***' + OPENAI_API_KEY[-4:] if OPENAI_API_KEY else '(not set)'}")
    _config_logger.debug("=" * 60)


@dataclass
class PipelineConfig:
    """Runtime settings for one TranslationService"""

    # Batching
    max_batch_size: int = MAX_BATCH_SIZE
    max_tokens_per_batch: int = MAX_TOKENS_PER_BATCH
    concurrency: int = BATCH_CONCURRENCY
    inter_batch_delay: float = INTER_BATCH_DELAY_MS / 1000.0

    # Recovery
    recovery_dir: str = RECOVERY_DIR
    autosave_interval: float = AUTOSAVE_INTERVAL_SECONDS
    recovery_max_age_days: int = RECOVERY_MAX_AGE_DAYS

    # Quality
    min_length_ratio: float = MIN_LENGTH_RATIO
    max_length_ratio: float = MAX_LENGTH_RATIO

    # Provider
    api_endpoint: str = API_ENDPOINT
    model: str = DEFAULT_MODEL
    api_key: str = OPENAI_API_KEY
    timeout: int = REQUEST_TIMEOUT
    max_attempts: int = MAX_TRANSLATION_ATTEMPTS
    retry_delay: float = RETRY_DELAY_SECONDS

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate settings. Raises ConfigurationError if invalid."""
        if self.max_batch_size < 1:
            raise ConfigurationError(f"max_batch_size must be >= 1, got {self.max_batch_size}")
        if self.max_tokens_per_batch < 1:
            raise ConfigurationError(f"max_tokens_per_batch must be >= 1, got {self.max_tokens_per_batch}")
        if self.concurrency < 1:
            raise ConfigurationError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.inter_batch_delay < 0:
            raise ConfigurationError(f"inter_batch_delay must be >= 0, got {self.inter_batch_delay}")
        if self.autosave_interval <= 0:
            raise ConfigurationError(f"autosave_interval must be > 0, got {self.autosave_interval}")
        if not (0 < self.min_length_ratio < 1.0 < self.max_length_ratio):
            raise ConfigurationError(
                f"length ratios must satisfy 0 < min < 1 < max, got "
                f"{self.min_length_ratio} / {self.max_length_ratio}"
            )
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.retry_delay < 0:
            raise ConfigurationError(f"retry_delay must be >= 0, got {self.retry_delay}")

    @classmethod
    def from_dict(cls, data: dict) -> 'PipelineConfig':
        """Create config from a settings dictionary, env defaults for missing keys"""
        return cls(
            max_batch_size=data.get('max_batch_size', MAX_BATCH_SIZE),
            max_tokens_per_batch=data.get('max_tokens_per_batch', MAX_TOKENS_PER_BATCH),
            concurrency=data.get('concurrency', BATCH_CONCURRENCY),
            inter_batch_delay=data.get('inter_batch_delay', INTER_BATCH_DELAY_MS / 1000.0),
            recovery_dir=data.get('recovery_dir', RECOVERY_DIR),
            autosave_interval=data.get('autosave_interval', AUTOSAVE_INTERVAL_SECONDS),
            recovery_max_age_days=data.get('recovery_max_age_days', RECOVERY_MAX_AGE_DAYS),
            min_length_ratio=data.get('min_length_ratio', MIN_LENGTH_RATIO),
            max_length_ratio=data.get('max_length_ratio', MAX_LENGTH_RATIO),
            api_endpoint=data.get('api_endpoint', API_ENDPOINT),
            model=data.get('model', DEFAULT_MODEL),
            api_key=data.get('api_key', OPENAI_API_KEY),
            timeout=data.get('timeout', REQUEST_TIMEOUT),
            max_attempts=data.get('max_attempts', MAX_TRANSLATION_ATTEMPTS),
            retry_delay=data.get('retry_delay', RETRY_DELAY_SECONDS),
        )

    def to_dict(self, mask_secrets: bool = True) -> dict:
        """Convert to dictionary for serialization"""
        api_key = self.api_key
        if mask_secrets and api_key:
            api_key = '***' + api_key[-4:]
        return {
            'max_batch_size': self.max_batch_size,
            'max_tokens_per_batch': self.max_tokens_per_batch,
            'concurrency': self.concurrency,
            'inter_batch_delay': self.inter_batch_delay,
            'recovery_dir': self.recovery_dir,
            'autosave_interval': self.autosave_interval,
            'recovery_max_age_days': self.recovery_max_age_days,
            'min_length_ratio': self.min_length_ratio,
            'max_length_ratio': self.max_length_ratio,
            'api_endpoint': self.api_endpoint,
            'model': self.model,
            'api_key': api_key,
            'timeout': self.timeout,
            'max_attempts': self.max_attempts,
            'retry_delay': self.retry_delay,
        }
