from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    DATABASE_URL: str = "postgresql+asyncpg://monitor:monitor_secret@db:5432/checkins"
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 1440

    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Relatórios: limites de dia (00:00:00.000–23:59:59.999) são calculados neste fuso
    REPORT_TIMEZONE: str = "America/Sao_Paulo"
    REPORT_TITLE: str = "Sistema de Monitoramento"
    # vazio = marca sólida no lugar do logotipo
    REPORT_LOGO_PATH: str = ""
    # 0 = calcular a partir da altura da página
    REPORT_ROWS_PER_PAGE: int = 0

    RECENT_CHECKINS_LIMIT: int = 20

    # Geocodificação reversa: provedores tentados nesta ordem
    GEOCODING_ENABLED: bool = True
    GEOCODING_PROVIDERS: list[str] = ["bigdatacloud", "positionstack", "opencage", "nominatim"]
    GEOCODING_TIMEOUT_SEC: float = 10.0
    GEOCODING_LANGUAGE: str = "pt"
    GEOCODING_USER_AGENT: str = "SecurityMonitoringSystem/1.0"
    BIGDATACLOUD_URL: str = "https://api.bigdatacloud.net/data/reverse-geocode-client"
    POSITIONSTACK_URL: str = "http://api.positionstack.com/v1/reverse"
    POSITIONSTACK_API_KEY: str | None = None
    OPENCAGE_URL: str = "https://api.opencagedata.com/geocode/v1/json"
    OPENCAGE_API_KEY: str | None = None
    NOMINATIM_URL: str = "https://nominatim.openstreetmap.org/reverse"


settings = Settings()
