from pydantic import BaseModel
import os
import logging
from pathlib import Path
from typing import List, Tuple

logger = logging.getLogger(__name__)

# Load .env file if it exists (before reading os.getenv)
_env_path = Path(__file__).resolve().parent.parent / ".env"
if _env_path.exists():
    with open(_env_path) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                # Only set if not already in environment (env vars take precedence)
                if key not in os.environ:
                    os.environ[key] = value


def _sanitize_ascii(val: str) -> str:
    """Strip non-ASCII characters from config values (prevents encoding errors)"""
    return val.encode('ascii', errors='ignore').decode('ascii').strip()


DEFAULT_BACKENDS = (
    "scraping=http://localhost:3000,"
    "automation=http://localhost:3003"
)

DEFAULT_INSTRUCTIONS = (
    "You are a helpful AI assistant that can access web data and perform various tasks "
    "such as sending emails and messages, scheduling events and managing contacts. "
    "When tool results are provided, base your answer on them and mention any tool that failed."
)


def parse_backends(raw: str) -> List[Tuple[str, str]]:
    """Parse 'id=url,id=url' into [(id, url)], keeping declaration order.

    A bare URL without an id gets the id 'backend<N>'.
    """
    backends = []
    for i, item in enumerate(raw.split(",")):
        item = item.strip()
        if not item:
            continue
        if "=" in item:
            backend_id, _, url = item.partition("=")
            backend_id = backend_id.strip()
            url = url.strip()
        else:
            backend_id, url = f"backend{i}", item
        if not backend_id or not url:
            logger.warning(f"Ignoring malformed backend entry: {item!r}")
            continue
        backends.append((backend_id, url.rstrip("/")))
    return backends


class Settings(BaseModel):
    # HTTP API
    api_host: str = os.getenv("TOOLRELAY_API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("TOOLRELAY_API_PORT", "3001"))

    # Completion service (sanitized to prevent 'ascii' codec errors)
    openai_api_key: str = _sanitize_ascii(os.getenv("OPENAI_API_KEY", ""))
    openai_base_url: str = _sanitize_ascii(os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"))
    openai_chat_model: str = _sanitize_ascii(os.getenv("OPENAI_CHAT_MODEL", "gpt-4o-mini"))
    max_tokens: int = int(os.getenv("LLM_MAX_TOKENS", "2048"))
    agent_instructions: str = os.getenv("AGENT_INSTRUCTIONS", DEFAULT_INSTRUCTIONS)

    # Tool backends
    backends: str = os.getenv("TOOLRELAY_BACKENDS", DEFAULT_BACKENDS)
    probe_timeout_s: float = float(os.getenv("PROBE_TIMEOUT", "10"))
    tool_timeout_s: float = float(os.getenv("TOOL_TIMEOUT", "30"))
    scrape_timeout_s: float = float(os.getenv("SCRAPE_TIMEOUT", "60"))
    refresh_interval_s: int = int(os.getenv("CATALOG_REFRESH_INTERVAL", "300"))

    # Synthesis
    result_max_chars: int = int(os.getenv("RESULT_MAX_CHARS", "2000"))

    def backend_list(self) -> List[Tuple[str, str]]:
        return parse_backends(self.backends)


settings = Settings()

# Log config for debugging
_oai_key = '***' + settings.openai_api_key[-4:] if len(settings.openai_api_key) > 4 else 'EMPTY'
logger.info(f"Config: LLM → {settings.openai_base_url} (key={_oai_key}), model={settings.openai_chat_model}")
logger.info(f"Config: backends → {settings.backends}")
