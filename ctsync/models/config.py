"""Configuration models for the change-tracking sync service."""

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseModel):
    """Connection settings for one SQL Server database."""

    server: str = Field(default=..., description="Server name, SERVER\\INSTANCE or SERVER,PORT")
    database: str = Field(default=..., description="Database (initial catalog) name")
    username: str | None = Field(default=None, description="SQL login; integrated auth if unset")
    password: str | None = Field(default=None, description="SQL login password")
    driver: str | None = Field(
        default=None, description="ODBC driver name; detected from installed drivers if unset"
    )
    connection_timeout: int = Field(default=30, ge=0, description="Login timeout in seconds")
    command_timeout: int = Field(default=300, ge=0, description="Query timeout in seconds")
    trust_server_certificate: bool = Field(default=True)
    encrypt: bool = Field(default=True)

    @field_validator("server", "database")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject empty or whitespace-only server and database names."""
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @property
    def uses_sql_login(self) -> bool:
        return bool(self.username and self.username.strip() and self.password)

    def connection_string(self, driver: str) -> str:
        """Render an ODBC connection string for the given driver."""
        parts = [
            f"DRIVER={{{driver}}}",
            f"SERVER={self.server}",
            f"DATABASE={self.database}",
            f"Connection Timeout={self.connection_timeout}",
            f"Encrypt={'yes' if self.encrypt else 'no'}",
            f"TrustServerCertificate={'yes' if self.trust_server_certificate else 'no'}",
        ]
        if self.uses_sql_login:
            # ODBC braces protect ';' in passwords; a literal '}' is doubled
            password = self.password.replace("}", "}}")
            parts.append(f"UID={self.username}")
            parts.append(f"PWD={{{password}}}")
        else:
            parts.append("Trusted_Connection=yes")
        return ";".join(parts) + ";"


class SyncConfig(BaseModel):
    """Settings for the sync run and its scheduler."""

    control_schema: str = Field(
        default="dbo", min_length=1, description="Destination schema holding SyncControl/SyncLog"
    )
    interval_minutes: int = Field(
        default=5, ge=1, description="Delay between scheduled runs when looping"
    )


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional log file path; '{date}' expands to dd-MM-yyyy.",
    )
    retention_days: int = Field(default=30, ge=1, description="Rotated log files to keep")


class AppConfig(BaseSettings):
    """Main application configuration.

    Values may come from a YAML file (see ConfigLoader) or from environment
    variables with the CTSYNC_ prefix, e.g. CTSYNC_SOURCE__SERVER.
    """

    model_config = SettingsConfigDict(
        env_prefix="CTSYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    source: DatabaseConfig
    destination: DatabaseConfig
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
