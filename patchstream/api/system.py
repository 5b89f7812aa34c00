"""
System information API endpoints.
"""

from fastapi import APIRouter
from pydantic import BaseModel

from .._version import __release_date__, __version__

router = APIRouter()


class VersionResponse(BaseModel):
    """Response model for version information."""
    version: str
    release_date: str


@router.get("/version", response_model=VersionResponse)
async def get_version():
    """
    Get the current patchstream version and release date.

    Returns:
        VersionResponse: Current version information including release date
    """
    return VersionResponse(version=__version__, release_date=__release_date__)
