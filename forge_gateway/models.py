from pydantic import BaseModel, Field


# --- Events ---


class LogEventRequest(BaseModel):
    type: str = Field(..., min_length=1, description="Event type, e.g. 'view', 'select'.")
    completion_id: str
    choice_index: int = Field(default=0, ge=0)
    view_id: str | None = None
    elapsed: int | None = None


# --- Completions ---


class Segments(BaseModel):
    prefix: str
    suffix: str | None = None
    filepath: str | None = None
    git_url: str | None = None


class CompletionRequest(BaseModel):
    language: str | None = None
    segments: Segments
    user: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    seed: int | None = None


class Choice(BaseModel):
    index: int
    text: str


class CompletionResponse(BaseModel):
    id: str
    choices: list[Choice]


# --- Server info ---


class ModelInfo(BaseModel):
    completion: list[str] | None = None
    chat: list[str] | None = None
    embedding: list[str] | None = None


class ServerSetting(BaseModel):
    disable_client_side_telemetry: bool
