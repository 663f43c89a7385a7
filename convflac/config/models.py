import os
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator


class PostAction(str, Enum):
    KEEP = "keep"
    DELETE = "delete"
    TRASH = "trash"
    PROMPT = "prompt"


def available_processors() -> int:
    return os.cpu_count() or 1


class GeneralConfig(BaseModel):
    """Options every job reads. Built once per run and never mutated."""

    model_config = ConfigDict(frozen=True)

    threads: int = Field(default=1, gt=0)
    compression: int = Field(default=8, ge=0, le=8)
    overwrite: bool = False
    copy_tags: bool = True
    use_fallback: bool = False
    post_action: PostAction = PostAction.KEEP
    scratch_dir: Optional[str] = None
    log_path: Optional[str] = None
    debug: bool = False

    @model_validator(mode="after")
    def validate_threads(self):
        processors = available_processors()
        if self.threads > processors:
            raise ValueError(
                f"You specified {self.threads} threads, but you only have {processors} processors. "
                f"Please specify no more than {processors} threads."
            )
        if self.post_action == PostAction.PROMPT and self.threads > 1:
            raise ValueError("The prompt post-action cannot be used with more than one thread")
        return self

    @property
    def quiet(self) -> bool:
        """Codec tools run quietly when several jobs share the terminal."""
        return self.threads > 1


class AppConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    general: GeneralConfig = Field(default_factory=GeneralConfig)
