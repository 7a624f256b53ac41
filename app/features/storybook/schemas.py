# app/features/storybook/schemas.py
from enum import Enum
from typing import List, Literal, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.config import MIN_PAGE_COUNT, MAX_PAGE_COUNT

DEFAULT_STYLE = "Storybook Illustration (Watercolor & Ink)"

# (value sent to the model, label shown in the form)
STYLE_PRESETS = [
    ("Storybook Illustration (Watercolor & Ink)", "Watercolor & Ink"),
    ("3D Pixar Style", "3D Cartoon (Pixar style)"),
    ("Crayon Drawing", "Child's Crayon Drawing"),
    ("Japanese Anime for Kids (Ghibli style)", "Anime (Ghibli style)"),
    ("Paper Cutout Art", "Paper Cutout Art"),
]

class ChildGender(str, Enum):
    BOY = "boy"
    GIRL = "girl"
    OTHER = "other"

class GenerationStatus(str, Enum):
    IDLE = "IDLE"
    GENERATING_STORY = "GENERATING_STORY"
    GENERATING_IMAGES = "GENERATING_IMAGES"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"

class UserInput(BaseModel):
    child_name: str = Field(..., description="Child's name, the hero of the book")
    child_gender: ChildGender = ChildGender.BOY
    activity_description: str = Field(..., description="What happened today")
    style_preference: str = Field(DEFAULT_STYLE, description="Visual style for every illustration")
    page_count: int = Field(5, ge=MIN_PAGE_COUNT, le=MAX_PAGE_COUNT, description="Number of story pages")

    @field_validator("child_name", "activity_description")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("style_preference")
    @classmethod
    def default_blank_style(cls, v: str) -> str:
        return (v or "").strip() or DEFAULT_STYLE

# ----- Story snapshot (immutable; updated by replacement) -----

class Page(BaseModel):
    model_config = ConfigDict(frozen=True)

    page_number: int = Field(..., ge=1)
    text: str
    image_prompt: str
    image_url: Optional[str] = None
    is_loading_image: bool = True

class Story(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    theme: str
    moral: str
    pages: Tuple[Page, ...]

class PageImageOutcome(BaseModel):
    """Settled result of a single page's illustration attempt."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["generated", "fallback"]
    image_url: str

    @property
    def is_fallback(self) -> bool:
        return self.kind == "fallback"

# ----- Structure call payload (what the text model must return) -----

class StructurePage(BaseModel):
    text: str = Field(..., min_length=1)
    image_prompt: str = Field(..., min_length=1)

class StructurePayload(BaseModel):
    title: str
    theme: str
    moral: str
    pages: List[StructurePage]

# ----- API views -----

class StoryState(BaseModel):
    status: GenerationStatus
    story: Optional[Story] = None
    error: Optional[str] = None
    pages_ready: int = 0
    total_pages: int = 0

class StylePreset(BaseModel):
    value: str
    label: str

class StylePresetsResponse(BaseModel):
    styles: List[StylePreset]
    default: str = DEFAULT_STYLE
