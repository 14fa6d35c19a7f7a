"""
Application configuration and settings.
"""

from functools import lru_cache
from pathlib import Path

import yaml
from pydantic_settings import BaseSettings

# Built-in prompts and YAML configs shipped with the package
RESOURCES_DIR = Path(__file__).parent / "resources"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Gemini API
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_api_keys: str = ""  # Comma-separated list of API keys
    duration_model: str = "gemini-1.5-flash"  # Duration query (step 1)
    segment_model: str = "gemini-2.5-flash"  # Per-segment scene analysis (step 3)
    segmentation_model: str = "gemini-2.0-flash-exp"  # Segment planning (step 2)
    chat_model: str = "gemini-2.0-flash-exp"  # Chat-style script edits
    video_timeout: float = 120.0
    text_timeout: float = 60.0

    # Proxies (optional egress paths)
    proxy_urls: str = ""  # Comma-separated proxy URLs, merged with proxies.yaml
    proxy_test_url: str = "https://httpbin.org/ip"
    proxy_test_timeout: float = 10.0

    # Pool cooldowns (seconds): min(base * 2^fail_count, max)
    key_cooldown_base: float = 60.0
    key_cooldown_max: float = 300.0
    proxy_cooldown_base: float = 30.0
    proxy_cooldown_max: float = 300.0

    # Retry policy for video analysis calls
    retry_max_retries: int = 3
    retry_base_delay: float = 60.0
    retry_max_delay: float = 300.0
    retry_jitter: float = 0.1

    # Final script fallback chain
    fallback_attempts_per_model: int = 2
    fallback_retry_delay: float = 2.0

    # Pipeline pacing (seconds) to stay under upstream rate limits
    step_delay: float = 60.0  # After duration query and after aggregation
    segment_delay: float = 60.0  # Between segments (not before the first)
    pre_call_delay: float = 60.0  # Right before every segment call
    segment_seconds: int = 300

    # Paths
    config_dir: Path = RESOURCES_DIR
    prompts_dir: Path | None = None  # External prompts directory (overrides built-in)

    # Logging
    log_level: str = "INFO"
    log_format: str = "structured"  # "simple" or "structured"

    # Per-module log levels (optional overrides)
    log_level_gemini: str | None = None
    log_level_pools: str | None = None
    log_level_pipeline: str | None = None
    log_level_retry: str | None = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def api_key_list(self) -> list[str]:
        """API keys from the comma-separated setting, blanks dropped."""
        return [k.strip() for k in self.gemini_api_keys.split(",") if k.strip()]

    @property
    def proxy_url_list(self) -> list[str]:
        """Proxy URLs from the comma-separated setting, blanks dropped."""
        return [p.strip() for p in self.proxy_urls.split(",") if p.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_prompt(name: str, settings: Settings | None = None) -> str:
    """
    Load a prompt template with external folder priority.

    Lookup order (first found wins):
    1. prompts_dir/{name}.md (external)
    2. config_dir/prompts/{name}.md (built-in)

    Args:
        name: Prompt name ("duration", "segmentation", "scene", "script_input", "chat")
        settings: Optional settings instance

    Returns:
        Prompt template content

    Raises:
        FileNotFoundError: If no matching prompt file is found
    """
    if settings is None:
        settings = get_settings()

    paths_to_check: list[Path] = []

    if settings.prompts_dir and settings.prompts_dir.exists():
        paths_to_check.append(settings.prompts_dir / f"{name}.md")

    paths_to_check.append(settings.config_dir / "prompts" / f"{name}.md")

    for path in paths_to_check:
        if path.exists():
            return path.read_text(encoding="utf-8")

    raise FileNotFoundError(
        f"Prompt not found: {name}. "
        f"Checked paths: {[str(p) for p in paths_to_check]}"
    )


def load_models_config(settings: Settings | None = None) -> dict:
    """
    Load model configuration from config/models.yaml.

    Args:
        settings: Optional settings instance

    Returns:
        Models configuration dictionary (``script_fallback`` model list etc.)
    """
    if settings is None:
        settings = get_settings()

    models_path = settings.config_dir / "models.yaml"
    with open(models_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_script_models(settings: Settings | None = None) -> list[str]:
    """
    Ordered model list for final script generation (best quality first).

    Args:
        settings: Optional settings instance

    Returns:
        List of model identifiers
    """
    config = load_models_config(settings)
    models = config.get("script_fallback") or []
    if not models:
        raise ValueError("models.yaml: script_fallback must list at least one model")
    return [str(m) for m in models]


def load_proxies_config(settings: Settings | None = None) -> list[dict]:
    """
    Load proxy definitions from config/proxies.yaml merged with PROXY_URLS.

    Each entry is a dict with ``url`` and optional ``type``, ``username``,
    ``password``, ``country``, ``speed``. A missing file means no proxies.

    Args:
        settings: Optional settings instance

    Returns:
        List of proxy definitions
    """
    if settings is None:
        settings = get_settings()

    proxies: list[dict] = []

    proxies_path = settings.config_dir / "proxies.yaml"
    if proxies_path.exists():
        with open(proxies_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        proxies.extend(data.get("proxies") or [])

    known = {p.get("url") for p in proxies}
    for url in settings.proxy_url_list:
        if url not in known:
            proxies.append({"url": url})

    return proxies
