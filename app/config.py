from pathlib import Path

from pydantic_settings import BaseSettings

DEFAULT_KNOWLEDGE_BASE_PATH = Path(__file__).resolve().parent / "knowledge" / "knowledge_base.yaml"


class Settings(BaseSettings):
    # LINE Messaging API
    line_channel_access_token: str = ""
    line_channel_secret: str = ""
    line_api_base: str = "https://api.line.me/v2/bot"
    line_data_api_base: str = "https://api-data.line.me/v2/bot"

    # Collaborators
    openai_api_key: str = ""
    openai_model: str = "gpt-4"
    openai_max_tokens: int = 500
    google_vision_api_key: str = ""
    payment_api_url: str = ""
    payment_api_key: str = ""
    knowledge_base_path: str = str(DEFAULT_KNOWLEDGE_BASE_PATH)

    # Routing
    bot_triggers: str = "@bot,@บอท"
    pending_image_ttl_seconds: float = 120.0
    reply_token_ttl_seconds: float = 50.0
    typing_delay_seconds: float = 1.0

    # Timeouts
    line_timeout_seconds: float = 10.0
    media_timeout_seconds: float = 15.0
    ocr_timeout_seconds: float = 20.0
    llm_timeout_seconds: float = 60.0
    payment_timeout_seconds: float = 10.0
    knowledge_timeout_seconds: float = 3.0

    # Operations
    log_level: str = "INFO"
    alert_bot_token: str = ""
    alert_chat_id: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def trigger_phrases(self) -> tuple[str, ...]:
        return tuple(phrase.strip() for phrase in self.bot_triggers.split(",") if phrase.strip())


settings = Settings()
