from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Groq
    groq_api_key: str = ""
    default_model: str = "llama-3.3-70b-versatile"
    vision_model: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    transcription_model: str = "whisper-large-v3-turbo"

    # Transcription backend: "groq" (hosted Whisper) or "local" (faster-whisper)
    transcription_backend: str = "groq"
    whisper_model: str = "small"
    whisper_device: str = "cpu"
    whisper_compute_type: str = "int8"

    # Recording
    sample_rate: int = 16000
    max_audio_bytes: int = int(14.5 * 1024 * 1024)

    # Attachments
    max_image_side: int = 1200
    image_quality: int = 60

    # Storage
    guest_store_path: str = "guest_lectures.json"
    database_path: str = "lecture_capture.db"
    persistence_setup_url: str = ""

    # Remote gateway (empty = call the AI services in-process)
    gateway_url: str = ""
    gateway_api_key: str = ""

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = ["*"]
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
