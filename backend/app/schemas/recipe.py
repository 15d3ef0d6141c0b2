"""Pydantic schemas for recipes."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.common import RequestModel


class RecipeCreate(RequestModel):
    name: str = Field(..., min_length=1, max_length=200)
    style: str | None = Field(None, max_length=100)
    yeast_strain: str | None = Field(None, max_length=100)


class RecipeOut(BaseModel):
    id: str
    name: str
    style: str | None
    yeast_strain: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
