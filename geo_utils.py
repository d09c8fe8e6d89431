import geopandas as gpd
import requests
from shapely.geometry import shape

from covid_config import COUNTY_ID, GEOJSON_TIMEOUT, GEOJSON_URL
from data_loader import DataSourceError


def _feature_fips(feature):
    """5-digit FIPS from the feature id, or from STATE + COUNTY properties."""
    fid = feature.get('id')
    if fid is None:
        props = feature.get('properties') or {}
        if 'STATE' in props and 'COUNTY' in props:
            fid = f"{props['STATE']}{props['COUNTY']}"
    try:
        return int(fid)
    except (TypeError, ValueError):
        return None


def counties_from_geojson(geojson):
    """
    Converts a county FeatureCollection into a GeoDataFrame with an int fips column.
    Features without a usable id or geometry are skipped.
    """
    records = []
    skipped = 0
    for feature in geojson.get('features', []):
        fips = _feature_fips(feature)
        if fips is None or not feature.get('geometry'):
            skipped += 1
            continue
        records.append({COUNTY_ID: fips, 'geometry': shape(feature['geometry'])})

    if skipped:
        print(f"Warning: Skipped {skipped} boundary features without fips or geometry.")

    return gpd.GeoDataFrame(records, columns=[COUNTY_ID, 'geometry'], geometry='geometry', crs='EPSG:4326')


def get_county_geometry(url=GEOJSON_URL, timeout=GEOJSON_TIMEOUT):
    """
    Fetches the county boundary GeoJSON once.
    A failed fetch is fatal for the map stage.
    """
    print(f"Fetching geometry from: {url}")
    try:
        with requests.get(url, timeout=timeout) as r:
            r.raise_for_status()
            geojson = r.json()
    except (requests.RequestException, ValueError) as e:
        raise DataSourceError(f"Error fetching geometry: {e}") from e

    return counties_from_geojson(geojson)


def attach_geometry(gdf, df):
    """
    Joins classified counties onto their polygons.
    Counties with no polygon are left off the map.
    """
    merged = gdf.merge(df, on=COUNTY_ID, how='inner')
    unmatched = len(set(df[COUNTY_ID]) - set(merged[COUNTY_ID]))
    if unmatched:
        print(f"Warning: {unmatched} counties have no boundary polygon and are omitted from the map.")
    return merged
