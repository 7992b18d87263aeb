"""Shared FastAPI dependencies."""

from fastapi import Request

from unihub.database import get_session as _get_session
from unihub.gamification.engine import GamificationEngine

get_db = _get_session


def get_gamification(request: Request) -> GamificationEngine:
    """The points engine built at startup."""
    return request.app.state.gamification
