from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_env: str = "dev"
    app_name: str = "Padu Reviews"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    postgres_url: str = "postgresql+psycopg://app:app@db:5432/app"
    redis_url: str = "redis://redis:6379/0"

    s3_endpoint: str = "http://minio:9000"
    s3_bucket: str = "padu-imports"
    s3_access_key: str = "minio"
    s3_secret_key: str = "minio123"

    jwt_secret: str = "change-me"

    # Middleware configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR
    log_format: str = "json"  # json or text
    enable_request_logging: bool = True
    cors_origins: str = ""  # Comma-separated list of allowed origins
    enable_gzip: bool = True

    # Metrics configuration (OpenTelemetry)
    enable_metrics: bool = True
    metrics_namespace: str = ""  # OpenTelemetry meter name (defaults to app_name)
    otel_service_name: str = ""  # OpenTelemetry service name (defaults to app_name)
    otel_exporter_otlp_endpoint: str = ""  # OTLP endpoint (e.g., http://localhost:4318)

    # CSV import limits
    max_upload_bytes: int = 50 * 1024 * 1024
    import_chunk_size: int = 1000  # rows per submitted chunk
    import_max_chunk_rows: int = 5000  # largest chunk the API accepts
    import_progress_interval: int = 10  # persist job counters every N rows
    import_max_error_ratio: float = 0.0  # 0.02 for the lenient flow
    import_text_warning_length: int = 5000
    import_error_preview_limit: int = 10  # issue messages kept in client results
    import_parse_progress_every: int = 1000  # rows between parse progress ticks

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


settings = Settings()
