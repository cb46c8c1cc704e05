"""
LLM Adapter for Axiom.

Provides a unified interface for the plan generation model.
Supports: Google Gemini (default) and OpenAI-compatible chat APIs.
"""
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, NoReturn, Optional, Protocol

import httpx
import yaml

from core.config_manager import config as system_config
from core.exceptions import (
    ConfigError,
    LLMAuthError,
    LLMConnectionError,
    LLMError,
    LLMRateLimitError,
    LLMTimeoutError,
)
from core.logger import get_logger

logger = get_logger("llm_adapter")

CONFIG_DIR = Path(__file__).parent.parent / "config"
MODEL_CONFIG_PATH = CONFIG_DIR / "model.yaml"
LOCAL_MODEL_CONFIG_PATH = CONFIG_DIR / "local_model.yaml"

DEFAULT_PROFILE = "gemini"
DEFAULT_MODEL_CONFIG: Dict[str, Any] = {
    "provider": "gemini",
    "model_name": "gemini-2.0-flash",
}


@dataclass
class LLMResponse:
    """Structured response from LLM."""
    content: str
    model: str
    usage: Optional[Dict[str, int]] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


class LLMProvider(Protocol):
    """Protocol defining the LLM provider interface."""

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000
    ) -> LLMResponse:
        """Generate text completion."""
        ...

    def get_model_name(self) -> str:
        """Return the model name."""
        ...


class BaseLLMAdapter(ABC):
    """Base class for LLM adapters."""

    provider = "unknown"

    def __init__(self, config: Dict[str, Any], transport: Optional[httpx.BaseTransport] = None):
        self.config = config
        self.model_name = config.get("model_name", "unknown")
        self.timeout = float(config.get("timeout", system_config.LLM_TIMEOUT_SECONDS))
        self.transport = transport

    @abstractmethod
    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000
    ) -> LLMResponse:
        """Generate text completion."""
        pass

    def get_model_name(self) -> str:
        return self.model_name

    def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str], endpoint: str) -> Dict[str, Any]:
        """POST a JSON request and map transport failures to the LLMError family."""
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(url, headers=headers, json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            self._raise_for_status(e.response, endpoint)
        except httpx.ConnectError:
            raise LLMConnectionError(
                provider=self.provider,
                model_name=self.model_name,
                endpoint=endpoint
            )
        except httpx.TimeoutException:
            raise LLMTimeoutError(
                provider=self.provider,
                model_name=self.model_name,
                endpoint=endpoint,
                timeout_seconds=self.timeout
            )
        except (httpx.HTTPError, ValueError) as e:
            raise LLMError(
                message=f"Request failed: {e}",
                provider=self.provider,
                model_name=self.model_name,
                endpoint=endpoint
            )

    def _raise_for_status(self, response: httpx.Response, endpoint: str) -> NoReturn:
        status = response.status_code
        if status in (401, 403):
            raise LLMAuthError(
                provider=self.provider,
                model_name=self.model_name,
                endpoint=endpoint
            )
        if status == 429:
            retry_after = response.headers.get("retry-after")
            raise LLMRateLimitError(
                provider=self.provider,
                model_name=self.model_name,
                endpoint=endpoint,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
            )
        raise LLMError(
            message=f"HTTP error: {status} - {response.text[:500]}",
            provider=self.provider,
            model_name=self.model_name,
            endpoint=endpoint
        )


class GeminiAdapter(BaseLLMAdapter):
    """Adapter for the Google Gemini generateContent API."""

    provider = "gemini"

    def __init__(self, config: Dict[str, Any], transport: Optional[httpx.BaseTransport] = None):
        super().__init__(config, transport)
        self.api_key = config.get("api_key") or os.environ.get("GEMINI_API_KEY")
        self.base_url = config.get("base_url", "https://generativelanguage.googleapis.com/v1beta")
        self.model_name = config.get("model_name") or os.environ.get("GEMINI_MODEL", "gemini-2.0-flash")

        if not self.api_key:
            raise ConfigError(
                "GEMINI_API_KEY not configured. Set the GEMINI_API_KEY env var or "
                "add 'api_key' to config/local_model.yaml",
                config_path=str(LOCAL_MODEL_CONFIG_PATH)
            )

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000
    ) -> LLMResponse:
        """Generate using Gemini. The system prompt is sent ahead of the user turn."""
        text = f"{system_prompt}\n\n{prompt}" if system_prompt else prompt
        payload = {
            "contents": [{"role": "user", "parts": [{"text": text}]}],
            "generationConfig": {
                "temperature": temperature,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": max_tokens,
            },
        }
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json"
        }
        url = f"{self.base_url}/models/{self.model_name}:generateContent"

        data = self._post(url, payload, headers, endpoint=self.base_url)

        candidates = data.get("candidates") or []
        if not candidates:
            return LLMResponse(content="", model=self.model_name, error="No response from Gemini")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        content = "".join(part.get("text", "") for part in parts)
        if not content:
            return LLMResponse(content="", model=self.model_name, error="Empty response from Gemini")

        usage = data.get("usageMetadata") or {}
        return LLMResponse(
            content=content,
            model=self.model_name,
            usage={
                "prompt_tokens": usage.get("promptTokenCount", 0),
                "completion_tokens": usage.get("candidatesTokenCount", 0)
            }
        )


class OpenAIAdapter(BaseLLMAdapter):
    """Adapter for OpenAI API (also compatible with other OpenAI-compatible APIs)."""

    provider = "openai"

    def __init__(self, config: Dict[str, Any], transport: Optional[httpx.BaseTransport] = None):
        super().__init__(config, transport)
        self.api_key = config.get("api_key") or os.environ.get("OPENAI_API_KEY")
        self.base_url = config.get("base_url", "https://api.openai.com/v1")
        self.model_name = config.get("model_name", "gpt-4o-mini")

        if not self.api_key:
            raise ConfigError(
                "OpenAI API key not found. Set OPENAI_API_KEY env var or "
                "add 'api_key' to config/local_model.yaml",
                config_path=str(LOCAL_MODEL_CONFIG_PATH)
            )

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000
    ) -> LLMResponse:
        """Generate using OpenAI API."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        payload = {
            "model": self.model_name,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens
        }

        data = self._post(f"{self.base_url}/chat/completions", payload, headers, endpoint=self.base_url)

        choices = data.get("choices") or []
        if not choices:
            return LLMResponse(content="", model=self.model_name, error="No response from model")

        return LLMResponse(
            content=choices[0]["message"].get("content") or "",
            model=data.get("model", self.model_name),
            usage=data.get("usage")
        )


def load_model_config(profile_name: Optional[str] = None) -> Dict[str, Any]:
    """
    Load model configuration from YAML file.
    Priority: local_model.yaml > model.yaml > built-in Gemini default

    Args:
        profile_name: Optional profile name. If None, uses active_profile from config.

    Returns:
        Configuration dict for the specified or active profile.

    Raises:
        ConfigError: the requested profile does not exist or the file is malformed

    Note:
        Supports ${ENV_VAR} syntax for environment variable expansion.
    """
    raw_config: Dict[str, Any] = {}
    for path in (LOCAL_MODEL_CONFIG_PATH, MODEL_CONFIG_PATH):
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as f:
                    raw_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Malformed model config: {e}", config_path=str(path))
            break

    if "profiles" in raw_config:
        profiles = raw_config["profiles"] or {}
        active_profile = profile_name or raw_config.get("active_profile", DEFAULT_PROFILE)

        if active_profile not in profiles:
            raise ConfigError(
                f"Model profile '{active_profile}' does not exist",
                config_path=str(MODEL_CONFIG_PATH)
            )

        return _expand_env_vars(profiles[active_profile])

    if raw_config:
        return _expand_env_vars(raw_config)

    return dict(DEFAULT_MODEL_CONFIG)


def _expand_env_vars(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Expand ${VAR} placeholders in config values with environment variables.

    Placeholders whose variable is unset are dropped, so adapters fall back
    to their own environment lookup and report a missing key themselves.
    """
    result = {}
    pattern = re.compile(r'\$\{([^}]+)\}')

    for key, value in config.items():
        if isinstance(value, str):
            match = pattern.fullmatch(value)
            if match:
                env_value = os.environ.get(match.group(1))
                if env_value:
                    result[key] = env_value
            else:
                result[key] = value
        elif isinstance(value, dict):
            result[key] = _expand_env_vars(value)
        else:
            result[key] = value

    return result


def create_llm_adapter(
    config: Optional[Dict[str, Any]] = None,
    profile_name: Optional[str] = None,
) -> BaseLLMAdapter:
    """
    Factory function to create the appropriate LLM adapter.

    Args:
        config: Optional config dict. If None, loads from model.yaml.
        profile_name: Optional profile name. Only used when config is None.

    Returns:
        Configured LLM adapter instance.
    """
    if config is None:
        config = load_model_config(profile_name)

    provider = str(config.get("provider", "gemini")).lower()

    if provider == "gemini":
        return GeminiAdapter(config)
    elif provider == "openai":
        return OpenAIAdapter(config)
    else:
        raise ConfigError(
            f"Unknown LLM provider '{provider}' (profile: {profile_name})",
            config_path=str(MODEL_CONFIG_PATH)
        )


# Global adapter registry (profile name -> instance)
_llm_registry: Dict[str, BaseLLMAdapter] = {}


def get_llm(profile_name: Optional[str] = None) -> BaseLLMAdapter:
    """
    Get or create the adapter for a profile (default: the active profile).
    Instances are cached in _llm_registry.
    """
    target_profile = profile_name or ""

    if target_profile not in _llm_registry:
        logger.info("Initializing LLM profile: %s", profile_name or "active")
        _llm_registry[target_profile] = create_llm_adapter(profile_name=profile_name)

    return _llm_registry[target_profile]


def reset_llm() -> None:
    """Reset the global LLM registry (useful for testing or config changes)."""
    _llm_registry.clear()
