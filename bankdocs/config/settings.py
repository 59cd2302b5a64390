"""Application settings loaded from environment variables via pydantic-settings.

Values come from (highest priority first) environment variables, then a
``.env`` file in the working directory, then the defaults below.  Field
``jira_api_token`` maps to env var ``JIRA_API_TOKEN`` and so on.  List
fields such as ``web_urls`` are given as JSON, e.g.
``WEB_URLS='["https://intranet/policies"]'``.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """bankdocs application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Ollama (embeddings + generation) ===
    ollama_base_url: str = "http://localhost:11434"
    ollama_embedding_model: str = "nomic-embed-text"
    ollama_embedding_dimension: int = 768
    ollama_chat_model: str = "phi3.5"
    ollama_max_retries: int = 3
    ollama_retry_base_delay: float = 1.0
    ollama_timeout: float = 30.0

    # === Passage store ===
    passage_store_backend: str = "memory"  # "memory" or "chromadb"
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "bank_passages"

    # === Ingestion ===
    ingestion_schedule_enabled: bool = False
    ingestion_interval_seconds: float = 3600.0
    chunk_size: int = Field(default=1000, ge=100)
    chunk_overlap: int = Field(default=200, ge=0)
    ingestion_batch_size: int = 50
    embed_concurrency: int = 4
    ingestion_busy_timeout: float = 60.0
    max_errors_per_source: int = 10
    ingestion_run_history: int = Field(default=100, gt=0)

    # === Sources ===
    local_documents_enabled: bool = True
    local_documents_path: str = "/data/documents"
    jira_base_url: str = ""
    jira_username: str = ""
    jira_api_token: str = ""
    jira_jql: str = "project = REF"
    confluence_base_url: str = ""
    confluence_username: str = ""
    confluence_api_token: str = ""
    confluence_space_key: str = "REF"
    web_urls: list[str] = []
    web_user_agent: str = "Mozilla/5.0 (compatible; BankDocsBot/1.0)"
    http_timeout: float = 30.0

    # === Retrieval / answers ===
    retrieval_max_results: int = 5
    retrieval_min_score: float = 0.7
    rerank_enabled: bool = True
    rerank_vector_weight: float = 0.7
    rerank_keyword_weight: float = 0.3
    rerank_title_bonus: float = 0.05
    prompt_max_context_chars: int = 6000
    llm_temperature: float = 0.2
    llm_max_tokens: int = 1024

    # === App Config ===
    config_path: str = "config/config.yaml"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _overlap_below_chunk_size(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be less than chunk_size")
        return self

    def get_configured_sources(self) -> list[str]:
        """Return the names of the sources that have enough configuration to run."""
        sources: list[str] = []
        if self.local_documents_enabled and self.local_documents_path:
            sources.append("local")
        if self.jira_base_url:
            sources.append("jira")
        if self.confluence_base_url:
            sources.append("confluence")
        if self.web_urls:
            sources.append("web")
        return sources
