"""Configuration — Pydantic models for baton settings."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from baton.agent.agent import DEFAULT_MODEL
from baton.agent.context import DEFAULT_MAX_TURNS, RunConfig
from baton.llm.provider import ModelSettings
from baton.tracing import (
    JSONLTraceProcessor,
    add_trace_processor,
    configure_tracing,
    env_flag,
)

logger = logging.getLogger(__name__)


class LLMConfig(BaseModel):
    """LLM provider configuration.

    Model names use litellm's provider-prefix format:
        "openai/gpt-4o"
        "anthropic/claude-sonnet-4-5-20250929"

    API keys are read from env vars automatically by litellm
    (OPENAI_API_KEY, ANTHROPIC_API_KEY, ...).
    """

    model: str = Field(default=DEFAULT_MODEL)
    temperature: float | None = Field(default=None)
    top_p: float | None = Field(default=None)
    max_tokens: int | None = Field(default=None)

    def settings(self) -> ModelSettings:
        return ModelSettings(
            temperature=self.temperature, top_p=self.top_p, max_tokens=self.max_tokens
        )


class RunSettings(BaseModel):
    max_turns: int = Field(default=DEFAULT_MAX_TURNS, ge=1, description="Max model calls per agent run")
    workflow_name: str | None = Field(default=None, description="Trace name; defaults to '<agent> run'")


class TracingConfig(BaseModel):
    disabled: bool = Field(default=False)
    include_sensitive_data: bool = Field(
        default=True, description="Record model/tool inputs and outputs on spans"
    )
    export_path: str | None = Field(
        default=None, description="Append finished traces to this JSONL file"
    )


class BatonConfig(BaseModel):
    """Top-level baton configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    run: RunSettings = Field(default_factory=RunSettings)
    tracing: TracingConfig = Field(default_factory=TracingConfig)
    agents_dir: str = Field(default="agents", description="Directory for agent definitions")

    @classmethod
    def load(cls, config_path: str | None = None) -> BatonConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            BATON_MODEL                        - Override model (litellm format with provider prefix)
            BATON_TEMPERATURE                  - Override sampling temperature
            BATON_MAX_TURNS                    - Override max turns per agent run
            BATON_DISABLE_TRACING              - Disable tracing (1/true/yes/on)
            BATON_TRACE_INCLUDE_SENSITIVE_DATA - Record inputs/outputs on spans (1/true/yes/on)
            BATON_TRACE_EXPORT_PATH            - JSONL file finished traces are appended to
        """
        # override=True so an edited .env wins over stale shell exports
        load_dotenv(override=True)

        config_data: dict[str, Any] = {}
        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        llm = config_data.get("llm", {})
        run = config_data.get("run", {})
        tracing = config_data.get("tracing", {})

        env_model = os.environ.get("BATON_MODEL")
        if env_model:
            llm["model"] = env_model

        env_temperature = os.environ.get("BATON_TEMPERATURE")
        if env_temperature:
            llm["temperature"] = float(env_temperature)

        env_max_turns = os.environ.get("BATON_MAX_TURNS")
        if env_max_turns:
            run["max_turns"] = int(env_max_turns)

        env_disabled = os.environ.get("BATON_DISABLE_TRACING")
        if env_disabled:
            tracing["disabled"] = env_flag(env_disabled)

        env_sensitive = os.environ.get("BATON_TRACE_INCLUDE_SENSITIVE_DATA")
        if env_sensitive:
            tracing["include_sensitive_data"] = env_flag(env_sensitive)

        env_export = os.environ.get("BATON_TRACE_EXPORT_PATH")
        if env_export:
            tracing["export_path"] = env_export

        for key, section in (("llm", llm), ("run", run), ("tracing", tracing)):
            if section:
                config_data[key] = section

        return cls.model_validate(config_data)

    def apply_tracing(self) -> None:
        """Install the tracing defaults and the JSONL sink, if configured."""
        configure_tracing(
            disabled=self.tracing.disabled,
            include_sensitive_data=self.tracing.include_sensitive_data,
        )
        if self.tracing.export_path:
            add_trace_processor(JSONLTraceProcessor(self.tracing.export_path))
            logger.info("Exporting traces to %s", self.tracing.export_path)

    def run_config(self, **overrides: Any) -> RunConfig:
        """A per-run config seeded from these settings."""
        fields: dict[str, Any] = {
            "workflow_name": self.run.workflow_name,
            "model": self.llm.model,
            "model_settings": self.llm.settings(),
            "max_turns": self.run.max_turns,
            "tracing_disabled": self.tracing.disabled,
            "trace_include_sensitive_data": self.tracing.include_sensitive_data,
        }
        fields.update(overrides)
        return RunConfig(**fields)
