"""Land/water classification from coastline polygons."""

from .land_mask import (
    LandClassifier,
    LandPolygon,
    PointClassification,
    Ring,
    buffer_coastline,
    load_polygons,
    point_in_ring,
    point_on_boundary,
    point_on_land,
    polygons_from_geojson,
    ring_from_bbox,
)

__all__ = [
    'LandClassifier',
    'LandPolygon',
    'PointClassification',
    'Ring',
    'buffer_coastline',
    'load_polygons',
    'point_in_ring',
    'point_on_boundary',
    'point_on_land',
    'polygons_from_geojson',
    'ring_from_bbox',
]
