"""API request and response models."""

from typing import List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for /health endpoint."""

    status: str = Field(..., description="Service status")
    providers: List[str] = Field(default_factory=list, description="Configured providers")
    provider_priority: List[str] = Field(default_factory=list, description="Trust ranking")
    timestamp: str = Field(..., description="Current timestamp")


class VenueQuery(BaseModel):
    """Query parameters accepted by /venues."""

    min_lat: Optional[float] = Field(None, ge=-90, le=90, examples=[52.45])
    min_lng: Optional[float] = Field(None, ge=-180, le=180, examples=[13.3])
    max_lat: Optional[float] = Field(None, ge=-90, le=90, examples=[52.6])
    max_lng: Optional[float] = Field(None, ge=-180, le=180, examples=[13.5])
    start: Optional[str] = Field(None, description="Start of time range (ISO format)", examples=["2025-09-01T00:00:00Z"])
    end: Optional[str] = Field(None, description="End of time range (ISO format)", examples=["2025-09-30T23:59:59Z"])

    def bounds(self) -> List[Optional[float]]:
        """Bounding box values in min_lat, min_lng, max_lat, max_lng order."""
        return [self.min_lat, self.min_lng, self.max_lat, self.max_lng]
