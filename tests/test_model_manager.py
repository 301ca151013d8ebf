"""Tests for model registration, provider routing and usage accounting."""

import asyncio

import pytest

from faultline.engine.config.settings import ModelConfig, OpenRouterConfig, SystemConfig
from faultline.engine.models.manager import ModelManager
from faultline.engine.models.providers import BaseModelProvider, GenerationMetadata, ProviderFactory

pytestmark = pytest.mark.unit


class EchoProvider(BaseModelProvider):
    """Provider that answers with the last message and fixed token counts."""

    instances: list["EchoProvider"] = []

    def __init__(self, system_config: SystemConfig):
        super().__init__(system_config)
        self.calls: list[str] = []
        EchoProvider.instances.append(self)

    @property
    def provider_name(self) -> str:
        return "ollama"

    async def get_available_models(self) -> list[str]:
        return ["qwen2.5:7b", "llama3.1:8b"]

    async def generate_response_with_metadata(self, model_config, messages, **overrides):
        self.calls.append(model_config.name)
        return GenerationMetadata(
            content=messages[-1]["content"], prompt_tokens=30, completion_tokens=12
        )

    def validate_model_config(self, model_config: ModelConfig) -> bool:
        return model_config.provider == "ollama"


class OfflineProvider(EchoProvider):
    async def get_available_models(self) -> list[str]:
        raise ConnectionError("connection refused")


@pytest.fixture
def echo_providers(monkeypatch: pytest.MonkeyPatch) -> list[EchoProvider]:
    EchoProvider.instances = []
    monkeypatch.setattr(
        ProviderFactory, "_providers", {"ollama": EchoProvider, "openrouter": OfflineProvider}
    )
    return EchoProvider.instances


def test_generation_is_routed_and_counted(echo_providers: list[EchoProvider]) -> None:
    manager = ModelManager(SystemConfig())
    manager.register_model("skeptic", ModelConfig(name="qwen2.5:7b", provider="ollama"))
    manager.register_model("advocate", ModelConfig(name="llama3.1:8b", provider="ollama"))

    async def exchange() -> None:
        await manager.generate_response_with_metadata("skeptic", [{"role": "user", "content": "a"}])
        await manager.generate_response_with_metadata("skeptic", [{"role": "user", "content": "b"}])
        reply = await manager.generate_response_with_metadata(
            "advocate", [{"role": "user", "content": "c"}]
        )
        assert reply.content == "c"

    asyncio.run(exchange())

    # both personas share one provider instance
    assert len(echo_providers) == 1
    assert echo_providers[0].calls == ["qwen2.5:7b", "qwen2.5:7b", "llama3.1:8b"]
    usage = manager.usage
    assert (usage["skeptic"].calls, usage["skeptic"].prompt_tokens) == (2, 60)
    assert usage["advocate"].completion_tokens == 12


def test_unregistered_model_is_rejected(echo_providers: list[EchoProvider]) -> None:
    manager = ModelManager(SystemConfig())

    with pytest.raises(ValueError, match="not registered"):
        asyncio.run(manager.generate_response_with_metadata("critic", []))


def test_register_rejects_mismatched_provider(echo_providers: list[EchoProvider]) -> None:
    manager = ModelManager(SystemConfig())

    with pytest.raises(ValueError, match="not valid"):
        manager.register_model("advocate", ModelConfig(name="gpt-4o", provider="openrouter"))
    assert manager.usage == {}


def test_catalog_lists_unreachable_provider_as_empty(echo_providers: list[EchoProvider]) -> None:
    catalog = asyncio.run(ModelManager(SystemConfig()).get_available_models())

    assert catalog == {"ollama": ["qwen2.5:7b", "llama3.1:8b"], "openrouter": []}


def test_unknown_provider_name() -> None:
    with pytest.raises(ValueError, match="Unknown provider"):
        ProviderFactory.create_provider("anthropic", SystemConfig())


def test_describe_providers_reports_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)

    missing = {p["name"]: p for p in ProviderFactory.describe_providers(SystemConfig())}
    keyed = {
        p["name"]: p
        for p in ProviderFactory.describe_providers(
            SystemConfig(openrouter=OpenRouterConfig(api_key="sk-test"))
        )
    }

    assert missing["ollama"]["configured"] is True
    assert missing["openrouter"]["configured"] is False
    assert keyed["openrouter"]["configured"] is True
    assert keyed["openrouter"]["base_url"] == "https://openrouter.ai/api/v1"
