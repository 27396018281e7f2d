from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_dir: Path = Path.home() / ".examprep" / "data"
    sqlite_filename: str = "examprep.db"
    # Quality assumed when a study request only carries is_correct
    default_quality_correct: int = 3
    default_quality_incorrect: int = 1
    host: str = "127.0.0.1"
    port: int = 0  # 0 = pick a free port
    log_level: str = "warning"
    cors_origins: list[str] = ["*"]

    model_config = {"env_prefix": "EXAMPREP_"}


settings = Settings()
