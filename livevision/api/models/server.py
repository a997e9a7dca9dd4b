"""Pydantic models for local server supervision endpoints."""

from typing import Optional

from pydantic import BaseModel, Field


class ServerStatusResponse(BaseModel):
    """Local server health plus the supervisor's process view."""

    running: bool = Field(..., description="Whether the server answered the catalog request")
    model_ready: bool = Field(..., description="Whether a usable vision model is in the catalog")
    error: Optional[str] = Field(default=None, description="Why the server is not usable")
    state: str = Field(..., description="Supervisor state: stopped, external, running, exited")
    pid: Optional[int] = Field(default=None, description="Process id of the spawned server")
    base_url: str = Field(..., description="Local server base URL")
    models_dir: str = Field(..., description="Models directory handed to the server")
    uptime_seconds: Optional[float] = Field(default=None, description="Seconds since spawn")


class PullRequest(BaseModel):
    """Provision a model on the local server."""

    model: Optional[str] = Field(
        default=None, description="Model to pull. If not provided, uses the vision_model setting."
    )


class PullResponse(BaseModel):
    model: str = Field(..., description="Model name")
    pulled: bool = Field(..., description="False if the model was already present")


class StartResponse(BaseModel):
    state: str = Field(..., description="Supervisor state after start")
    model: str = Field(..., description="Model provisioned after start")
    pulled: bool = Field(..., description="False if the model was already present")
