"""Remote metadata providers and the resolver that chains them."""

from .anidb import AniDBGateway
from .anilist import AniListGateway
from .jikan import JikanGateway
from .matching import clean_query, clean_title, title_matches
from .ratelimit import RateLimiter
from .resolver import MetadataResolver, ResolverStrategy
from .settings import MetadataSettings, load_metadata_settings
from .tmdb import TMDbGateway
from .types import (
    PROVIDER_ANIDB,
    PROVIDER_ANILIST,
    PROVIDER_ID_PRIORITY,
    PROVIDER_JIKAN,
    PROVIDER_NONE,
    PROVIDER_TMDB,
    CastMember,
    EpisodeMetadata,
    UnifiedMetadata,
)

__all__ = [
    "AniDBGateway",
    "AniListGateway",
    "CastMember",
    "EpisodeMetadata",
    "JikanGateway",
    "MetadataResolver",
    "MetadataSettings",
    "PROVIDER_ANIDB",
    "PROVIDER_ANILIST",
    "PROVIDER_ID_PRIORITY",
    "PROVIDER_JIKAN",
    "PROVIDER_NONE",
    "PROVIDER_TMDB",
    "RateLimiter",
    "ResolverStrategy",
    "TMDbGateway",
    "UnifiedMetadata",
    "clean_query",
    "clean_title",
    "load_metadata_settings",
    "title_matches",
]
