from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "shiftops"

    env: str = "local"
    debug: bool = False

    db_host: str = "127.0.0.1"
    db_port: int = 5432
    db_name: str = "shiftops"
    db_user: str = "shiftops"
    db_password: str = "shiftops"

    # Полный URL (например sqlite для локальных прогонов); перекрывает db_*
    database_url_override: str | None = None

    # ---------------------------------------------------------------------
    # Time
    # ---------------------------------------------------------------------

    # Все "сегодня / эта неделя / этот месяц" считаются в этой зоне.
    # В БД всегда UTC.
    business_timezone: str = "Asia/Yekaterinburg"

    # ---------------------------------------------------------------------
    # Logging
    # ---------------------------------------------------------------------

    log_level: str = "info"
    log_format: str = "console"  # json | console

    # ---------------------------------------------------------------------
    # Archive defaults (global fallback for the `settings` table)
    # ---------------------------------------------------------------------

    default_task_archive_days: int = 30
    default_archive_overdue_hours_after_shift: int = 2
    default_auto_archive_enabled: bool = True
    default_auto_archive_day_of_week: int = 0  # 0 = every day, 1..7 = ISO weekday
    default_archive_completed_cooldown_hours: int = 24
    # cooldown | days | weekend | end_of_day (см. SettingsService.archive_mode)
    default_archive_mode: str = "cooldown"
    default_archive_overdue_day_of_week: int = 0  # 0 = every day, 1..7 = ISO weekday

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+psycopg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


settings = Settings()
