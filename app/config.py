from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./uconnect.db"

    # Any OpenAI-compatible endpoint works (e.g. a local Ollama server at http://localhost:11434/v1)
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4.1"
    OPENAI_EXTRACTION_MODEL: str = "gpt-4.1-mini"
    GENERATION_TEMPERATURE: float = 0.7
    MAX_OUTPUT_TOKENS: int = 4096

    # AI-assisted extraction/planning; rule-based only when disabled
    AI_ENTITY_EXTRACTION_ENABLED: bool = False
    AI_QUERY_PLANNING_ENABLED: bool = False

    # Chatbot limits
    MAX_HISTORY_MESSAGES: int = 10
    MAX_CONTEXT_TOKENS: int = 4000
    MAX_API_RESULTS: int = 50
    DOCUMENT_EXCERPT_CHARS: int = 6000
    SESSION_TTL_SECONDS: int = 3600

    # Admissions
    UNIVERSITY_NAME: str = "Universidad de Córdoba"
    ADMISSIONS_SIMULATOR_URL: str = "https://docs.google.com/spreadsheets/d/19qet5I99Jb4Ljs3XuujKvJByFiV5Lbqk/edit?usp=sharing"
    ADMISSIONS_REFERENCE_SCORES_URL: str = "https://docs.google.com/spreadsheets/d/1gGAAJJyBuJ8qjbkOOppEh0wBlOfRyyue/edit?usp=sharing"

    ALLOWED_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env

settings = Settings()
