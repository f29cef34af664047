from typing import Optional

from pydantic import Field

from app.schemas.types import CamelModel, NonEmptyStr


class Vehicle(CamelModel):
    id: str
    name: str


class CrewCreate(CamelModel):
    name: NonEmptyStr = Field(..., max_length=100)
    leader_name: Optional[str] = Field(None, max_length=150)
    members: list[str] = []
    vehicles: list[Vehicle] = []
    is_active: bool = True


class CrewUpdate(CamelModel):
    name: Optional[NonEmptyStr] = Field(None, max_length=100)
    leader_name: Optional[str] = Field(None, max_length=150)
    members: Optional[list[str]] = None
    vehicles: Optional[list[Vehicle]] = None
    is_active: Optional[bool] = None
