from pydantic import BaseModel


class WebhookResponse(BaseModel):
    status: str


class ReloadResponse(BaseModel):
    reloaded: bool
    repositories: int


class HealthResponse(BaseModel):
    status: str
    mirrors: int
