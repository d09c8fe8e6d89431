import os

import pandas as pd


def export_results(result, output_dir, base_name, scatter=None, county_map=None,
                   map_gdf=None, formats=('csv', 'html')):
    """
    Exports the analysis tables and rendered figures.

    Args:
        result (AnalysisResult): Output of run_analysis.analyze.
        output_dir (str): Folder to save to.
        base_name (str): Filename prefix (e.g., 'COVID_Income_2021-12-31').
        scatter (plotly Figure): Optional scatter plot to save as HTML.
        county_map (folium.Map): Optional choropleth to save as HTML.
        map_gdf (GeoDataFrame): Optional classified map layer for 'geojson'.
        formats (tuple): Any of 'csv', 'html', 'geojson'.

    Returns the list of written paths.
    """
    if not os.path.exists(output_dir):
        os.makedirs(output_dir)

    path_base = os.path.join(output_dir, base_name)
    written = []

    # ---------------------------------------------------------
    # 1. Tables
    # ---------------------------------------------------------
    if 'csv' in formats:
        print(f"Saving county table: {path_base}_counties.csv...")
        counties = result.counties.merge(result.outliers, on='fips', how='left')
        counties.to_csv(f"{path_base}_counties.csv", index=False)
        written.append(f"{path_base}_counties.csv")

        result.summary.to_csv(f"{path_base}_category_summary.csv", index=False)
        written.append(f"{path_base}_category_summary.csv")

        pd.DataFrame([result.correlation]).to_csv(f"{path_base}_correlation.csv", index=False)
        written.append(f"{path_base}_correlation.csv")

    # ---------------------------------------------------------
    # 2. Interactive figures
    # ---------------------------------------------------------
    if 'html' in formats:
        if scatter is not None:
            print(f"Saving scatter plot: {path_base}_scatter.html...")
            scatter.write_html(f"{path_base}_scatter.html")
            written.append(f"{path_base}_scatter.html")
        if county_map is not None:
            print(f"Saving choropleth: {path_base}_map.html...")
            county_map.save(f"{path_base}_map.html")
            written.append(f"{path_base}_map.html")

    # ---------------------------------------------------------
    # 3. GeoJSON (classified map layer)
    # ---------------------------------------------------------
    if 'geojson' in formats:
        if map_gdf is None:
            print("Skipping GeoJSON: no map layer supplied.")
        else:
            print(f"Saving GeoJSON: {path_base}.geojson...")
            map_gdf.to_file(f"{path_base}.geojson", driver="GeoJSON")
            written.append(f"{path_base}.geojson")

    print("Export Complete.")
    return written
