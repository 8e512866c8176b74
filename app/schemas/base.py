from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

class BaseSchema(BaseModel):
    class Config:
        from_attributes = True

class WireSchema(BaseModel):
    """Serialized camelCase on the wire (displayName, createdAt, ...)."""

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
