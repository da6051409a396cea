from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # LINE Messaging API
    line_channel_access_token: str = ""
    line_channel_secret: str = ""
    # Reply tokens expire shortly after the event; past this age we push instead
    line_reply_window_s: float = 50.0

    # LLM API Keys
    google_ai_api_key: str = ""
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # Drafting
    draft_model: str = "gemini-2.5-flash"
    draft_max_tokens: int = 2048
    llm_timeout_s: float = 60.0
    structured_dispatch: bool = False

    # SMTP relay
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_timeout_s: float = 30.0
    mail_sender: str = ""
    mail_default_recipient: str = ""

    # Conversation
    trigger_phrases: list[str] = ["send mail", "寄信"]
    cancel_keywords: list[str] = ["cancel", "取消"]
    session_ttl_s: int = 1800
    draft_preview_chars: int = 60

    # Langfuse
    langfuse_secret_key: str = ""
    langfuse_public_key: str = ""
    langfuse_host: str = "http://localhost:3000"

    # App
    app_env: str = "development"
    log_level: str = "INFO"
    port: int = 8000

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def sender_address(self) -> str:
        """From address: the explicit sender, else the SMTP login."""
        return self.mail_sender or self.smtp_username

    @property
    def default_recipient(self) -> str:
        """CLI fallback recipient. Without one configured, mail goes to the sender."""
        return self.mail_default_recipient or self.sender_address


settings = Settings()
