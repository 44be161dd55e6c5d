import os
from dataclasses import dataclass
from datetime import timezone

@dataclass
class Settings:
    BOT_TOKEN: str = os.environ.get("BOT_TOKEN", "")
    ALLOWED_USER_ID: int = int(os.environ.get("ALLOWED_USER_ID", "0"))

    MINI_APP_HOST: str = os.environ.get("MINI_APP_HOST", "0.0.0.0")
    MINI_APP_PORT: int = int(os.environ.get("MINI_APP_PORT", "8080"))

    DB_PATH: str = os.environ.get("DB_PATH", "data/quiz.db")
    QUESTIONS_PATH: str = os.environ.get("QUESTIONS_PATH", "data/questions.json")

    DAILY_REPORT_HOUR: int = int(os.environ.get("DAILY_REPORT_HOUR", "4"))
    DAILY_REPORT_MINUTE: int = int(os.environ.get("DAILY_REPORT_MINUTE", "0"))

    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    TZ = timezone.utc

    def require_bot_credentials(self):
        if not self.BOT_TOKEN or self.ALLOWED_USER_ID == 0:
            raise ValueError("BOT_TOKEN and ALLOWED_USER_ID must be set in the environment")

settings = Settings()
