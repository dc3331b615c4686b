"""Public models for the picker service."""

from bgg_picker.models.game import Game
from bgg_picker.models.requests import GameDetailsRequest, RollRequest
from bgg_picker.models.responses import ApiResponse, CollectionPayload, RollResult

__all__ = [
    "ApiResponse",
    "CollectionPayload",
    "Game",
    "GameDetailsRequest",
    "RollRequest",
    "RollResult",
]
