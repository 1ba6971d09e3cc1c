import os
import logging
from typing import Dict, Optional, Any

logger = logging.getLogger(__name__)

try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_MAX_TOKENS = 8192
DEFAULT_ROLE_SAMPLE_SIZE = 40
DEFAULT_TAG_BATCH_SIZE = 200
DEFAULT_PATCH_WORKERS = 8
DEFAULT_STORE_PATH = "./data/store.json"


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        self.debug = os.environ.get("DEBUG", "0") == "1"
        self.anthropic_api_key = os.environ.get("ANTHROPIC_API_KEY") or None
        self.model = os.environ.get("CLASSIFICATION_MODEL", DEFAULT_MODEL)
        self.max_tokens = int(os.environ.get("CLASSIFICATION_MAX_TOKENS", DEFAULT_MAX_TOKENS))
        self.request_timeout = float(os.environ.get("CLASSIFICATION_TIMEOUT", "0")) or None
        self.role_temperature = float(os.environ.get("ROLE_TEMPERATURE", "0.3"))
        self.tag_temperature = float(os.environ.get("TAG_TEMPERATURE", "0.0"))
        self.role_sample_size = int(os.environ.get("ROLE_SAMPLE_SIZE", DEFAULT_ROLE_SAMPLE_SIZE))
        self.tag_batch_size = int(os.environ.get("TAG_BATCH_SIZE", DEFAULT_TAG_BATCH_SIZE))
        self.patch_workers = int(os.environ.get("PATCH_WORKERS", DEFAULT_PATCH_WORKERS))
        self.store_path = os.environ.get("STORE_PATH", DEFAULT_STORE_PATH)
        self.strip_annotations = _env_bool("STRIP_ANNOTATIONS", "true")

    def reload(self) -> "Config":
        """Re-read the environment (used after the environment changes, e.g. in tests)."""
        self._initialize()
        return self

    def get_api_key(self) -> Optional[str]:
        return self.anthropic_api_key

    def as_dict(self) -> Dict[str, Any]:
        return {
            "debug": self.debug,
            "model": self.model,
            "max_tokens": self.max_tokens,
            "request_timeout": self.request_timeout,
            "role_temperature": self.role_temperature,
            "tag_temperature": self.tag_temperature,
            "role_sample_size": self.role_sample_size,
            "tag_batch_size": self.tag_batch_size,
            "patch_workers": self.patch_workers,
            "store_path": self.store_path,
            "strip_annotations": self.strip_annotations,
            "has_api_key": self.anthropic_api_key is not None,
        }


config = Config()


def get_config() -> Config:
    return config


def create_classification_adapter(cfg: Config):
    """Create the classification adapter.

    Missing credentials are not an error here; the pipeline checks them
    before its first network call.
    """
    from adapters.claude import ClaudeClassificationAdapter

    adapter = ClaudeClassificationAdapter(
        api_key=cfg.get_api_key(), model=cfg.model, timeout=cfg.request_timeout,
    )
    logger.info(f"Classification adapter: {type(adapter).__name__} (model={cfg.model}, configured={adapter.is_configured()})")
    return adapter


def create_store_adapter(cfg: Config):
    from adapters.local.json_store import JsonFileStore
    return JsonFileStore(cfg.store_path)


def create_analysis_options(cfg: Config):
    from use_cases.analyze import AnalysisOptions

    return AnalysisOptions(
        role_sample_size=cfg.role_sample_size,
        tag_batch_size=cfg.tag_batch_size,
        patch_workers=cfg.patch_workers,
        max_tokens=cfg.max_tokens,
        role_temperature=cfg.role_temperature,
        tag_temperature=cfg.tag_temperature,
    )
