from __future__ import annotations

"""
Video capability-token payloads.

The player contract is camelCase (`tokenId`, `streamUrl`, `expiresIn`);
routers dump with `by_alias=True`. Inputs also accept the snake_case names.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, constr
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VideoTokenOut(_CamelModel):
    token: str
    token_id: str
    film_id: UUID
    stream_url: str
    expires_in: int
    film_name: Optional[str] = None


class VideoTokenRefreshIn(_CamelModel):
    token_id: constr(strip_whitespace=True, min_length=1, max_length=256)


class VideoTokenRefreshOut(_CamelModel):
    token_id: str
    expires_in: int
    film_name: Optional[str] = None
    refreshed: bool = True
    message: str = "Token refreshed"
