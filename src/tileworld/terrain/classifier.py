"""Collapse module fields at a position into one terrain kind."""

from __future__ import annotations

from typing import Protocol

from tileworld.config import ClassifierSettings
from tileworld.models import TerrainKind, WATER_KINDS

OVERRIDE_KINDS = frozenset({TerrainKind.ROAD, TerrainKind.TRAIL, TerrainKind.BUILDING, TerrainKind.VILLAGE})


class FieldSource(Protocol):
    def get_terrain_at(self, x: int, y: int): ...

    def elevation_at(self, x: float, y: float) -> float: ...

    def elevation_neighbourhood_mean(self, x: float, y: float, radius: int) -> float: ...

    def soil_quality_at(self, x: float, y: float) -> float: ...


class TerrainClassifier:
    """Pure mapping from field values to :class:`TerrainKind`.

    Elevations within ``hysteresis_band`` of a threshold are banded by their
    neighbourhood mean instead, which keeps borders from speckling.
    """

    def __init__(self, fields: FieldSource, settings: ClassifierSettings | None = None) -> None:
        self._fields = fields
        self._settings = settings or ClassifierSettings()

    @property
    def settings(self) -> ClassifierSettings:
        return self._settings

    def classify(self, x: int, y: int) -> TerrainKind:
        override = self._fields.get_terrain_at(x, y).terrain
        if override in OVERRIDE_KINDS or override in WATER_KINDS:
            return override

        elevation = self._fields.elevation_at(x, y)
        if self._near_threshold(elevation):
            elevation = self._fields.elevation_neighbourhood_mean(x, y, self._settings.hysteresis_radius)
        return self.band(elevation, self._fields.soil_quality_at(x, y))

    def band(self, elevation: float, soil_quality: float) -> TerrainKind:
        settings = self._settings
        if elevation >= settings.mountain_min_elevation:
            return TerrainKind.MOUNTAIN
        if elevation >= settings.foothills_min_elevation:
            return TerrainKind.FOOTHILLS
        if elevation >= settings.forest_min_elevation and soil_quality >= settings.forest_min_soil:
            return TerrainKind.FOREST
        return TerrainKind.PLAINS

    def _near_threshold(self, elevation: float) -> bool:
        settings = self._settings
        thresholds = (
            settings.forest_min_elevation,
            settings.foothills_min_elevation,
            settings.mountain_min_elevation,
        )
        return any(abs(elevation - threshold) < settings.hysteresis_band for threshold in thresholds)
