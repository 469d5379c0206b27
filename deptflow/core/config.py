from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # App
    app_name: str = "Deptflow"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./deptflow.db"

    # Logging
    log_level: str = "INFO"
    log_dir: str = "./logs"
    log_to_file: bool = False

    # Workflow
    head_role: str = "HD"
    financial_control_departments: str = "AF,CG"
    default_min_approvers: int = 1
    early_visibility: bool = True

    @property
    def financial_control_departments_list(self) -> list[str]:
        return [
            code.strip()
            for code in self.financial_control_departments.split(",")
            if code.strip()
        ]

    # Policy
    policy_cache_ttl_seconds: int = 30  # 0 disables periodic reloads
    policy_file: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="DEPTFLOW_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
