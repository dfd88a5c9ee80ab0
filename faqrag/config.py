"""Application configuration with sensible defaults.

Values are read from the environment (and an optional ``.env`` file) once, at
import time. Components never read this module directly; the CLI snapshots it
into a :class:`Settings` object and passes that down.
"""
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
FAQ_PATH = Path(os.getenv("FAQ_PATH", str(DATA_DIR / "faqs.json")))

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
CHAT_MODEL = os.getenv("CHAT_MODEL", "gemma3:12b")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "mxbai-embed-large:latest")
PROVIDER_TIMEOUT = float(os.getenv("PROVIDER_TIMEOUT", "60.0"))
PROVIDER_MAX_RETRIES = int(os.getenv("PROVIDER_MAX_RETRIES", "3"))

# RAG parameters (character-based to avoid tokenizer inconsistencies)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "500"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "150"))
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "5"))
EMBED_CONCURRENCY = int(os.getenv("EMBED_CONCURRENCY", "4"))

# Answer generation
GENERATION_TIMEOUT = float(os.getenv("GENERATION_TIMEOUT", "30.0"))
GENERATION_TEMPERATURE = float(os.getenv("GENERATION_TEMPERATURE", "0.0"))
ASSISTANT_DOMAIN = os.getenv("ASSISTANT_DOMAIN", "company HR policies")

# Vector storage: "memory" (rebuilt every run) or "faiss" (persisted in DATA_DIR)
VECTOR_BACKEND = os.getenv("VECTOR_BACKEND", "memory")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


@dataclass(frozen=True)
class Settings:
    """Snapshot of every runtime knob, passed explicitly into components."""

    data_dir: Path = DATA_DIR
    faq_path: Path = FAQ_PATH
    ollama_base_url: str = OLLAMA_BASE_URL
    chat_model: str = CHAT_MODEL
    embedding_model: str = EMBEDDING_MODEL
    provider_timeout: float = PROVIDER_TIMEOUT
    provider_max_retries: int = PROVIDER_MAX_RETRIES
    chunk_size: int = CHUNK_SIZE
    chunk_overlap: int = CHUNK_OVERLAP
    top_k: int = RETRIEVAL_TOP_K
    embed_concurrency: int = EMBED_CONCURRENCY
    generation_timeout: float = GENERATION_TIMEOUT
    generation_temperature: float = GENERATION_TEMPERATURE
    assistant_domain: str = ASSISTANT_DOMAIN
    vector_backend: str = VECTOR_BACKEND
    log_level: str = LOG_LEVEL

    @property
    def db_path(self) -> Path:
        return self.data_dir / "faqrag.sqlite"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the module-level values read at import."""
        return cls()
