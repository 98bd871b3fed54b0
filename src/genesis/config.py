"""Process configuration assembled from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from src.genesis.llm import LLMConfig
from src.genesis.memory import MemoryConfig
from src.genesis.memory.operators import EmbeddingConfig, GravityConfig, RecallConfig
from src.genesis.memory.storage import InMemoryConfig, PostgresConfig
from src.genesis.subconscious import SubconsciousConfig


@dataclass
class GenesisConfig:
    """Everything a Genesis process needs, one dataclass per component."""
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    subconscious: SubconsciousConfig = field(default_factory=SubconsciousConfig)
    log_level: str = "INFO"


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def load_config(env_file: str | None = None) -> GenesisConfig:
    """Create configuration from environment (and a .env file if present)."""
    load_dotenv(env_file)

    embedding_config = EmbeddingConfig(
        embedding_model=os.getenv("EMBEDDING_MODEL", "nomic-embed-text"),
        embedding_dim=int(os.getenv("EMBEDDING_DIM", "768")) or None,  # 0 disables the check
        ollama_host=os.getenv("OLLAMA_HOST") or None,
        timeout=float(os.getenv("EMBEDDING_TIMEOUT", "30")),
        requests_per_minute=int(os.getenv("EMBEDDING_RPM", "60")),
        cache_size=int(os.getenv("EMBEDDING_CACHE_SIZE", "1000")),
    )

    postgres_config = PostgresConfig(
        host=os.getenv("POSTGRES_HOST", "localhost"),
        port=int(os.getenv("POSTGRES_PORT", "5432")),
        database=os.getenv("POSTGRES_DB", "genesis"),
        user=os.getenv("POSTGRES_USER", ""),
        password=os.getenv("POSTGRES_PASSWORD", ""),
    )

    memory = MemoryConfig(
        backend=os.getenv("GENESIS_BACKEND", "memory").lower(),
        memory_config=InMemoryConfig(),
        postgres_config=postgres_config,
        embedding_config=embedding_config,
        gravity_config=GravityConfig(),
        recall_config=RecallConfig(),
    )

    subconscious = SubconsciousConfig(
        enable_llm=_flag("SUBCONSCIOUS_ENABLE_LLM"),
        llm_config=LLMConfig(model=os.getenv("SUBCONSCIOUS_MODEL", LLMConfig.model)),
        default_salience=memory.default_salience,
        default_depth=memory.default_depth,
    )

    return GenesisConfig(
        memory=memory,
        subconscious=subconscious,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
