"""
Chaosplane Configuration.

Pydantic Settings v2: loads from .env, environment variables.
CLI flags (see chaosplane.cli) override the loaded values.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BUNDLED_SPEC_DIR = Path(__file__).resolve().parent / "specs"
BUNDLED_OPENAPI = Path(__file__).resolve().parent / "docs" / "openapi.yaml"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = "Chaosplane"
    app_version: str = "1.0.0"
    debug: bool = Field(default=False, alias="DEBUG")

    # ── Listeners ─────────────────────────────────────────────────────────
    http_addr: str = Field(default=":9000", alias="CHAOSPLANE_HTTP")
    rpc_addr: str = Field(default=":9001", alias="CHAOSPLANE_GRPC")
    api_prefix: str = "/api/v1"

    # ── Security ──────────────────────────────────────────────────────────
    # Empty token disables bearer auth (development mode)
    auth_token: str = Field(default="", alias="CHAOSPLANE_AUTH_TOKEN")
    idempotency_ttl_seconds: float = Field(default=600.0, alias="CHAOSPLANE_IDEMPOTENCY_TTL")

    # ── Record store ──────────────────────────────────────────────────────
    datafile_path: str = Field(default="", alias="CHAOSBLADE_DATAFILE_PATH")

    # ── Executors ─────────────────────────────────────────────────────────
    spec_dir: str = Field(default=str(BUNDLED_SPEC_DIR), alias="CHAOSPLANE_SPEC_DIR")
    os_exec_bin: str = Field(default="chaos_os", alias="CHAOSPLANE_OS_EXEC_BIN")
    jvm_sandbox_home: str = Field(default="/opt/chaosblade/lib/sandbox", alias="JVM_SANDBOX_HOME")
    jvm_sandbox_namespace: str = Field(default="chaosblade", alias="JVM_SANDBOX_NAMESPACE")
    jvm_sandbox_timeout_seconds: float = Field(default=30.0, alias="JVM_SANDBOX_TIMEOUT_SECONDS")

    # ── Operational ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")


def split_addr(addr: str, default_port: int) -> tuple[str, int]:
    """Split a ``host:port`` listen address; an empty host means all interfaces."""
    host, sep, port = addr.rpartition(":")
    if not sep:
        host, port = ("", addr) if addr.isdigit() else (addr, "")
    port_num = int(port) if port.isdigit() else default_port
    return host or "0.0.0.0", port_num


settings = Settings()
