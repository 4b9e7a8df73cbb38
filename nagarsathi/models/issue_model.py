from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

IssueCategory = Literal["pothole", "garbage", "water_leak", "streetlight", "drainage", "road_damage", "other"]

MAX_ISSUE_IMAGES = 5
MAX_RESOLUTION_IMAGES = 3


class Location(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(default_factory=lambda: [0.0, 0.0])  # [lng, lat]
    address: str = ""

    @field_validator("coordinates")
    @classmethod
    def check_coordinates(cls, v):
        if len(v) != 2:
            raise ValueError("coordinates must be [longitude, latitude]")
        lng, lat = v
        if not -180 <= lng <= 180 or not -90 <= lat <= 90:
            raise ValueError("coordinates out of range")
        return v


class IssueCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=2000)
    category: IssueCategory
    location: Location
    state: Optional[str] = None
    district: Optional[str] = None

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class IssueUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    category: Optional[IssueCategory] = None


class IssueStatusUpdate(BaseModel):
    status: str
    note: Optional[str] = None
