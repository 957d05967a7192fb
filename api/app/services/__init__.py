"""Services for the Brew-Me-In API."""

from app.services.matching import MatchingService
from app.services.mutes import MuteRegistry
from app.services.pokes import PokeService
from app.services.rate_limiter import RateLimiter
from app.services.spam import ProfanityFilter, SpamClassifier

__all__ = [
    "RateLimiter",
    "MuteRegistry",
    "SpamClassifier",
    "ProfanityFilter",
    "PokeService",
    "MatchingService",
]
