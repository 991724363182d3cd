from pydantic import BaseModel, ConfigDict


class ServiceFrequencyEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    count: int
