"""
Pydantic models for HAR entries, filter state, timeline projections and
ingestion events.
"""

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


ALL_CATEGORIES = "all"


class Category(str, Enum):
    """Derived request category"""
    FETCH = "fetch"
    DOC = "doc"
    CSS = "css"
    JS = "js"
    IMG = "img"
    MEDIA = "media"
    MANIFEST = "manifest"
    CORS = "cors"
    WS = "ws"
    WASM = "wasm"
    OTHER = "other"


# Order shown to the operator when cycling through category filters
TYPE_FILTERS: List[str] = [ALL_CATEGORIES] + [category.value for category in Category]

# HAR numbers keep the type they were written with so exports match the input
Number = Union[int, float]


# ============================================================================
# HAR ENTRY MODELS (HTTP Archive 1.2)
# ============================================================================

class HarModel(BaseModel):
    """
    Base for HAR records.

    Records are immutable once decoded. Unknown fields are kept so that an
    exported entry reproduces its input.
    """
    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def null_as_default(cls, value: Any, info: ValidationInfo) -> Any:
        """JSON null in a field that has a non-null default decodes to that default."""
        if value is None:
            default = cls.model_fields[info.field_name].get_default(call_default_factory=True)
            if default is not None:
                return default
        return value


class HarHeader(HarModel):
    """HTTP header name-value pair"""
    name: str = ""
    value: str = ""


class HarCookie(HarModel):
    """HTTP cookie"""
    name: str = ""
    value: str = ""
    domain: Optional[str] = None
    path: Optional[str] = None
    secure: Optional[bool] = None
    http_only: Optional[bool] = Field(default=None, alias="httpOnly")


class HarPostData(HarModel):
    """Request body"""
    mime_type: str = Field(default="", alias="mimeType")
    text: Optional[str] = None


class HarRequest(HarModel):
    """HTTP request"""
    method: str = ""
    url: str = ""
    http_version: str = Field(default="", alias="httpVersion")
    headers: List[HarHeader] = Field(default_factory=list)
    cookies: List[HarCookie] = Field(default_factory=list)
    post_data: Optional[HarPostData] = Field(default=None, alias="postData")


class HarContent(HarModel):
    """Response body and its declared type"""
    size: int = 0
    mime_type: str = Field(default="", alias="mimeType")
    text: Optional[str] = None
    encoding: Optional[str] = None


class HarResponse(HarModel):
    """HTTP response"""
    status: int = 0
    status_text: str = Field(default="", alias="statusText")
    http_version: str = Field(default="", alias="httpVersion")
    headers: List[HarHeader] = Field(default_factory=list)
    cookies: List[HarCookie] = Field(default_factory=list)
    content: HarContent = Field(default_factory=HarContent)


class HarTimings(HarModel):
    """Per-phase timings in milliseconds (-1 or 0 when not applicable)"""
    blocked: Number = 0
    dns: Number = 0
    connect: Number = 0
    send: Number = 0
    wait: Number = 0
    receive: Number = 0
    ssl: Number = 0


class HarEntry(HarModel):
    """Single recorded HTTP transaction"""
    started_date_time: str = Field(default="", alias="startedDateTime")
    time: Number = Field(default=0, description="Total elapsed time in ms")
    request: HarRequest = Field(default_factory=HarRequest)
    response: HarResponse = Field(default_factory=HarResponse)
    timings: HarTimings = Field(default_factory=HarTimings)
    resource_type: Optional[str] = Field(
        default=None,
        alias="_resourceType",
        description="Browser resource type hint (Chrome DevTools export)",
    )

    def to_har(self) -> dict:
        """Serialize back to HAR JSON keys, keeping only what was decoded."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


# ============================================================================
# FILTER STATE
# ============================================================================

class FilterState(BaseModel):
    """Operator-selected filters; every change produces a new value"""
    model_config = ConfigDict(frozen=True)

    text_filter: str = Field(default="", description="Case-insensitive search text")
    category_filter: str = Field(default=ALL_CATEGORIES, description="Category label or 'all'")
    errors_only: bool = Field(default=False, description="Keep only status >= 400 or 0")
    sort_by_duration: bool = Field(default=False, description="Slowest requests first")

    def reset(self) -> "FilterState":
        return FilterState()

    def toggle_errors_only(self) -> "FilterState":
        return self.model_copy(update={"errors_only": not self.errors_only})

    def toggle_sort_by_duration(self) -> "FilterState":
        return self.model_copy(update={"sort_by_duration": not self.sort_by_duration})

    def with_text(self, text: str) -> "FilterState":
        return self.model_copy(update={"text_filter": text})

    def with_category(self, category: str) -> "FilterState":
        return self.model_copy(update={"category_filter": str(getattr(category, "value", category))})


# ============================================================================
# TIMELINE PROJECTION
# ============================================================================

class TimelineBar(BaseModel):
    """Placement of one request in the waterfall chart"""
    position: int = Field(description="Entry position in the store")
    offset: int = Field(description="Columns from the left edge of the chart")
    width: int = Field(description="Bar length in columns")
    duration_ms: float = Field(description="Entry duration")
    start_known: bool = Field(default=True, description="False when startedDateTime did not parse")


class TimelineTick(BaseModel):
    """Logarithmic time-scale marker"""
    column: int
    elapsed_ms: float
    label: str


class TimelineProjection(BaseModel):
    """Waterfall layout for a filtered set of entries"""
    chart_width: int
    window_start: Optional[datetime] = Field(default=None, description="Earliest parsed start")
    window_length_ms: float = Field(default=0.0, description="Earliest start to latest end")
    bars: List[TimelineBar] = Field(default_factory=list, description="Bars in render order")
    ticks: List[TimelineTick] = Field(default_factory=list)

    def bar_for(self, position: int) -> Optional[TimelineBar]:
        for bar in self.bars:
            if bar.position == position:
                return bar
        return None


# ============================================================================
# INGESTION EVENTS
# ============================================================================

class LoadEvent(BaseModel):
    """Message published by the streaming loader"""
    terminal: ClassVar[bool] = False


class EntriesAdded(LoadEvent):
    """A batch of newly appended positions"""
    first_position: int
    positions: List[int]


class LoadProgress(LoadEvent):
    """Running count of ingested entries"""
    count: int


class LoadComplete(LoadEvent):
    """Ingestion finished; the store will not change for this run"""
    terminal: ClassVar[bool] = True
    count: int


class LoadFailed(LoadEvent):
    """Ingestion aborted; entries ingested so far remain valid"""
    terminal: ClassVar[bool] = True
    error: str
    count: int


class LoadCancelled(LoadEvent):
    """Ingestion stopped on request"""
    terminal: ClassVar[bool] = True
    count: int
