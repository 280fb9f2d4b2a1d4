"""Built-in Kimi models and merging with models declared in settings."""

from __future__ import annotations

from collections.abc import Iterable

from kimi_llm.settings import AvailableModel
from kimi_llm.types import ModelDescriptor

BASE_MODELS: tuple[ModelDescriptor, ...] = (
    ModelDescriptor(id="moonshot-v1-8k", display_name="Moonshot v1 8K", max_tokens=8_192),
    ModelDescriptor(id="moonshot-v1-32k", display_name="Moonshot v1 32K", max_tokens=32_768),
    ModelDescriptor(id="moonshot-v1-128k", display_name="Moonshot v1 128K", max_tokens=131_072),
)


def custom_model(model: AvailableModel) -> ModelDescriptor:
    return ModelDescriptor(
        id=model.name,
        display_name=model.display_name or model.name,
        max_tokens=model.max_tokens,
        max_output_tokens=model.max_output_tokens,
        is_custom=True,
    )


def build_catalog(
    overrides: Iterable[AvailableModel] = (),
    base: Iterable[ModelDescriptor] = BASE_MODELS,
) -> list[ModelDescriptor]:
    """Merge ``overrides`` over ``base`` by id. Later entries win; result is sorted by id."""
    models: dict[str, ModelDescriptor] = {m.id: m for m in base}
    for model in overrides:
        models[model.name] = custom_model(model)
    return [models[key] for key in sorted(models)]
