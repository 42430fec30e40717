from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EntityGraphSettings(BaseSettings):
    """Unified configuration for entity-graph.

    Environment variables are prefixed with ENTITY_GRAPH_.
    """

    model_config = SettingsConfigDict(env_prefix="ENTITY_GRAPH_", extra="ignore")

    # --- Core ---
    log_level: str = Field(default="INFO", description="Python logging level")

    # --- Storage ---
    store: Literal["memory", "sqlite"] = Field(default="memory", description="memory|sqlite")
    sqlite_path: str = Field(default="~/.entity_graph/graph.db")

    # --- Manager ---
    batch_size: int = Field(default=5, gt=0, description="save_all progress/log interval")
    default_page_size: int = Field(default=10, gt=0)


settings = EntityGraphSettings()
