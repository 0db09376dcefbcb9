import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "default_model": "gemini-2.0-flash-lite",
    "extra_models": [],  # additional allowlisted model ids, e.g. "gpt-4o" or "qwen2.5-coder:14b"
    "max_attempts": 3,
    "base_retry_delay": 5.0,  # seconds; doubled per attempt when the provider gives no reset hint
    "min_retry_delay": 1,
    "max_retry_delay": 60,
    "max_files_per_pr": 10,
    "min_patch_chars": 10,
    "inter_file_delay": None,  # None = derive from the model's requests-per-minute
    "daily_file_reviews": 10,
    "daily_pr_reviews": 10,
    "max_source_chars": 50000,
    "store": "memory",
    "store_path": ".codegrade.db",
    "user_id": "local",
}

# Environment variable → config key. Credentials are only ever read from the
# environment, never from the YAML file, so they cannot be committed by accident.
_ENV_KEYS = {
    "GITHUB_TOKEN": "github_token",
    "OPENAI_API_KEY": "openai_api_key",
    "OPENAI_BASE_URL": "openai_base_url",
    "ANTHROPIC_API_KEY": "anthropic_api_key",
    "GEMINI_API_KEY": "gemini_api_key",
    "OPENAI_LOCAL_BASE_URL": "local_base_url",
    "OPENAI_LOCAL_API_KEY": "local_api_key",
}


def load_config(config_path: str = ".codegrade.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .codegrade.yml in the current directory
      3. CODEGRADE_DEFAULT_MODEL environment variable
      4. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "extra_models": list(DEFAULT_CONFIG["extra_models"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    env_model = os.environ.get("CODEGRADE_DEFAULT_MODEL")
    if env_model:
        config["default_model"] = env_model

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    for env_name, key in _ENV_KEYS.items():
        config[key] = os.environ.get(env_name)

    return config
