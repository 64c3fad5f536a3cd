"""
Pydantic schemas for API request/response validation
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List, Literal
from datetime import datetime


# ============================================================================
# EXECUTION SCHEMAS
# ============================================================================

class ExecutionRequest(BaseModel):
    """Schema for queueing workflow runs"""
    business_ids: Optional[List[str]] = Field(
        None,
        description="Businesses to run the workflow for. Defaults to businesses not emailed yet "
                    "in the workflow's target category (max 50)."
    )

    class Config:
        json_schema_extra = {
            "example": {
                "business_ids": ["0b6f1c9e-3f0e-4d7b-9a53-6f3e0c1d2a4b"]
            }
        }


class QueuedRun(BaseModel):
    business_id: Optional[str]
    execution_id: str


class ExecutionQueuedResponse(BaseModel):
    """Schema for queued runs"""
    workflow_id: str
    workflow_name: str
    status: str = "queued"
    runs: List[QueuedRun]
    total: int


class ExecutionResponse(BaseModel):
    """Schema for execution log response"""
    id: str
    workflow_id: str
    business_id: Optional[str]
    user_id: str
    status: str
    logs: List[str]
    state: Optional[Dict[str, Any]]
    error: Optional[str]
    resumed_from_id: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class ExecutionListResponse(BaseModel):
    """Schema for listing execution logs"""
    executions: List[ExecutionResponse]
    total: int


# ============================================================================
# EMAIL SCHEMAS
# ============================================================================

class EmailSendRequest(BaseModel):
    """Schema for queueing one outreach email"""
    user_id: str
    business_id: str
    template_id: str


class TaskQueuedResponse(BaseModel):
    task_id: str
    status: str = "queued"


# ============================================================================
# SCRAPING SCHEMAS
# ============================================================================

class ScrapingJobCreate(BaseModel):
    """Schema for starting a scraping job"""
    user_id: str
    keywords: List[str] = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    sources: Optional[List[str]] = Field(None, description="Scraper sources (default: google-maps)")

    class Config:
        json_schema_extra = {
            "example": {
                "user_id": "5c2d0a8e-1b7f-4f4e-8d1a-2a9c3e7b6f10",
                "keywords": ["pizza", "italian restaurant"],
                "location": "Austin, TX",
                "sources": ["google-maps"]
            }
        }


class ScrapingControlRequest(BaseModel):
    """Pause / resume / stop a running scraping job"""
    action: Literal["pause", "resume", "stop"]


class ScrapingJobResponse(BaseModel):
    id: str
    user_id: str
    keywords: List[str]
    location: Optional[str]
    sources: List[str]
    status: str
    businesses_found: int
    progress: int
    error: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# GENERIC SCHEMAS
# ============================================================================

class MessageResponse(BaseModel):
    """Generic message response"""
    message: str


class ErrorResponse(BaseModel):
    """Error response"""
    detail: str
