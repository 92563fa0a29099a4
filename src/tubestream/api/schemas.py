from pydantic import BaseModel


class InfoRequest(BaseModel):
    url: str = ""


class FormatResponse(BaseModel):
    label: str
    height: int
    ext: str


class InfoResponse(BaseModel):
    title: str
    thumbnail: str
    duration: str
    channel: str
    formats: list[FormatResponse]


class HealthResponse(BaseModel):
    ok: bool
    cacheSize: int
    storage: str
    toolPath: str


class ErrorResponse(BaseModel):
    error: str
