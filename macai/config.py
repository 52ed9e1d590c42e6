import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

CONFIG_PATH = Path("config.json")
ENV_OVERRIDE_KEY = "MACAI_ENV_OVERRIDES_CONFIG"
ENV_OVERRIDE_TRUE = {"1", "true", "yes", "on"}


class AppSettings(BaseModel):
    cerebras_api_key: Optional[str] = None
    provider_base_url: str = "https://api.cerebras.ai/v1"
    model: str = "gpt-oss-120b"
    searxng_url: str = "http://localhost:8888"
    search_timeout_s: float = 15.0
    max_tool_turns: int = 10
    host: str = "0.0.0.0"
    port: int = 3000

    def to_safe_dict(self) -> dict:
        data = self.model_dump()
        if data.get("cerebras_api_key"):
            data["cerebras_api_key"] = "********"
        return data

    model_config = {"protected_namespaces": ()}


def _load_from_env() -> dict:
    load_dotenv()
    env_map = {
        "cerebras_api_key": os.getenv("CEREBRAS_API_KEY"),
        "provider_base_url": os.getenv("CEREBRAS_BASE_URL"),
        "model": os.getenv("MODEL"),
        "searxng_url": os.getenv("SEARXNG_URL"),
        "search_timeout_s": os.getenv("SEARCH_TIMEOUT_S"),
        "max_tool_turns": os.getenv("MAX_TOOL_TURNS"),
        "host": os.getenv("HOST"),
        "port": os.getenv("PORT"),
    }
    cleaned = {k: v for k, v in env_map.items() if v not in (None, "")}
    if "search_timeout_s" in cleaned:
        cleaned["search_timeout_s"] = float(cleaned["search_timeout_s"])
    if "max_tool_turns" in cleaned:
        cleaned["max_tool_turns"] = int(cleaned["max_tool_turns"])
    if "port" in cleaned:
        cleaned["port"] = int(cleaned["port"])
    return cleaned


def _env_overrides_config() -> bool:
    return str(os.getenv(ENV_OVERRIDE_KEY, "")).strip().lower() in ENV_OVERRIDE_TRUE


def load_settings(config_path: Optional[Path] = None) -> AppSettings:
    env_data = _load_from_env()
    path = config_path or CONFIG_PATH
    file_data: Dict[str, Any] = {}
    if path.exists():
        try:
            file_data = json.loads(path.read_text())
        except ValueError:
            file_data = {}
    # Config wins by default; allow env overrides only when explicitly enabled.
    if _env_overrides_config():
        merged = {**file_data, **env_data}
    else:
        merged = {**env_data, **file_data}
    if not merged.get("cerebras_api_key") and env_data.get("cerebras_api_key"):
        merged["cerebras_api_key"] = env_data["cerebras_api_key"]
    return AppSettings(**merged)


def save_settings(settings: AppSettings, config_path: Optional[Path] = None) -> None:
    path = config_path or CONFIG_PATH
    path.write_text(settings.model_dump_json(indent=2))
