from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # JSON-RPC endpoint of the downstream webhook
    upstream_url: str = "http://localhost:5678/mcp"
    host: str = "0.0.0.0"
    port: int = 3000

    session_key: str = "default"
    session_header: str = "mcp-session-id"

    request_timeout: float = 30.0
    stream_timeout: float = 60.0
    max_body_bytes: int = 10 * 1024 * 1024

    # Relay the upstream response live when the caller asks for SSE
    stream_upstream: bool = False

    protocol_version: str = "2024-11-05"
    client_name: str = "openai-mcp"
    client_version: str = "1.0.0"

    log_level: str = "INFO"


settings = Settings()
