from pydantic import BaseModel, Field

from genproxy.services.generation.base import GenerationRequest


class GenerateIn(BaseModel):
    model: str
    prompt: str
    size: str | None = None
    images: list[str] | None = None  # data URIs

    def to_request(self) -> GenerationRequest:
        return GenerationRequest(
            model=self.model,
            prompt=self.prompt,
            size=self.size,
            images=tuple(self.images or ()),
        )


class ImageOut(BaseModel):
    url: str


class GenerateOut(BaseModel):
    created: int
    data: list[ImageOut] = Field(default_factory=list)


class ErrorBody(BaseModel):
    message: str


class ErrorOut(BaseModel):
    error: ErrorBody
