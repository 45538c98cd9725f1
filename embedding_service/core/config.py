# File: embedding_service/core/config.py
import sys
import logging
from typing import Optional
from pydantic import Field, field_validator, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_prefix='EMBEDDING_',
        case_sensitive=False,
        env_file_encoding='utf-8',
        extra='ignore'
    )

    PROJECT_NAME: str = "ONNX Embedding Service"
    LOG_LEVEL: str = "INFO"

    # --- ONNX model and tokenizer ---
    MODEL_NAME: str = Field(default="all-mpnet-base-v2", description="Human-readable name reported in model info.")
    MODEL_PATH: str = Field(default="models/model.onnx", description="Path to the exported ONNX encoder.")
    TOKENIZER_PATH: str = Field(default="models/tokenizer.json", description="Path to the tokenizer definition (JSON with model.vocab).")
    MAX_LENGTH: int = Field(default=128, ge=2, description="Fixed token sequence length, including <s> and </s>.")
    EMBEDDING_DIMENSION: int = Field(default=768, gt=0, description="Vector dimension; used for fallback vectors.")
    STRICT_DIMENSION: bool = Field(default=True, description="Fail startup if the model's static output dimension differs from EMBEDDING_DIMENSION.")
    MODEL_LOAD_RETRIES: int = Field(default=0, ge=0, description="Extra attempts when creating the inference session fails.")

    # --- ONNX Runtime threading (None = all CPU cores) ---
    ORT_INTRA_OP_THREADS: Optional[int] = None
    ORT_INTER_OP_THREADS: Optional[int] = None

    # --- Batching ---
    BATCH_SIZE: int = Field(default=32, ge=1, description="Texts embedded concurrently per chunk.")
    INTER_BATCH_DELAY_MS: int = Field(default=50, ge=0, description="Pause between chunks to bound CPU pressure.")
    WORKER_BATCH_SIZE: int = Field(default=256, ge=1, description="JSON lines grouped per embed_batch call by the worker.")

    @field_validator('LOG_LEVEL')
    @classmethod
    def check_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid LOG_LEVEL '{v}'. Must be one of {valid_levels}")
        return v.upper()

    @field_validator('ORT_INTRA_OP_THREADS', 'ORT_INTER_OP_THREADS')
    @classmethod
    def check_thread_count(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError(f"Thread count must be >= 1 when set, got {v}")
        return v

temp_log = logging.getLogger("embedding_service.config.loader")
if not temp_log.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    temp_log.addHandler(handler)
    temp_log.setLevel(logging.INFO)

try:
    temp_log.info("Loading Embedding Service settings...")
    settings = Settings()
    temp_log.info("--- Embedding Service Settings Loaded ---")
    temp_log.info(f"  PROJECT_NAME: {settings.PROJECT_NAME}")
    temp_log.info(f"  LOG_LEVEL: {settings.LOG_LEVEL}")
    temp_log.info(f"  MODEL_PATH: {settings.MODEL_PATH}")
    temp_log.info(f"  TOKENIZER_PATH: {settings.TOKENIZER_PATH}")
    temp_log.info(f"  MAX_LENGTH: {settings.MAX_LENGTH}")
    temp_log.info(f"  EMBEDDING_DIMENSION: {settings.EMBEDDING_DIMENSION}")
    temp_log.info(f"  BATCH_SIZE: {settings.BATCH_SIZE}")
    temp_log.info("----------------------------------------")
except ValidationError as e:
    temp_log.critical(f"FATAL: Embedding Service configuration validation failed:\n{e}")
    sys.exit("FATAL: Invalid configuration. Check logs.")
