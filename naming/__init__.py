"""Filename and folder-name parsing utilities."""

from .classify import ANIME, MOVIE, SERIES, Classification, classify, is_likely_anime
from .parser import (
    clean_folder_name,
    extract_show_name,
    extract_year,
    is_video_file,
    normalize_series_name,
    parse_episode,
    parse_movie,
)
from .types import EpisodeIdentity, MovieIdentity

__all__ = [
    "ANIME",
    "MOVIE",
    "SERIES",
    "Classification",
    "EpisodeIdentity",
    "MovieIdentity",
    "classify",
    "clean_folder_name",
    "extract_show_name",
    "extract_year",
    "is_likely_anime",
    "is_video_file",
    "normalize_series_name",
    "parse_episode",
    "parse_movie",
]
