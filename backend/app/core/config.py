from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Status Page"
    app_env: str = "development"
    app_version: str = "1.0.7"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "status_page"
    postgres_user: str = "status_page"
    postgres_password: str = "status_page"

    redis_host: str = "localhost"
    redis_port: int = 6379

    database_url: str | None = None
    database_auto_create: bool = True
    redis_url: str | None = None
    frontend_origin: str = "http://localhost:3000"
    additional_frontend_origins: str = ""
    worker_heartbeat_key: str = "worker:heartbeat"
    worker_heartbeat_ttl_seconds: int = 45
    redis_socket_connect_timeout_seconds: float = 2.0
    redis_socket_timeout_seconds: float = 5.0

    jwt_secret_key: str = "change_this_in_production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60 * 24
    default_admin_username: str = "admin"
    default_admin_password: str = "admin123"
    webhook_token: str = "webhook-secret-token"

    version_check_scheduler_enabled: bool = True
    version_check_interval_seconds: float = 5 * 60
    version_check_initial_delay_seconds: float = 5.0
    version_check_request_delay_seconds: float = 0.2
    version_check_distributed_lock: bool = True
    version_check_lock_key: str = "lock:version_check:all"
    version_check_lock_ttl_seconds: int = 30 * 60

    probe_max_attempts: int = 3
    probe_timeout_seconds: float = 30.0
    probe_retry_backoff_seconds: float = 2.0
    probe_head_timeout_seconds: float = 15.0

    @property
    def cors_allowed_origins(self) -> list[str]:
        origins = [self.frontend_origin.strip()]
        if self.additional_frontend_origins.strip():
            origins.extend(
                [value.strip() for value in self.additional_frontend_origins.split(",") if value.strip()]
            )
        unique: list[str] = []
        for origin in origins:
            if origin and origin not in unique:
                unique.append(origin)
        return unique

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def sqlalchemy_database_uri(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def cache_redis_url(self) -> str:
        if self.redis_url:
            return self.redis_url
        return f"redis://{self.redis_host}:{self.redis_port}/0"


settings = Settings()
