from dataclasses import dataclass

import pandas as pd

from covid_config import *
from analysis_utils import (
    DataValidationError, NationalReference, add_death_rate, check_rates,
    classify_counties, clean_county_attributes, clean_county_deaths,
    join_county_deaths, national_reference
)
from data_loader import DataSourceError, FrameDataProvider, SqlDataProvider
from export_utils import export_results
from geo_utils import attach_geometry, get_county_geometry
from plot_utils import category_choropleth, income_death_rate_scatter
from stats_utils import category_summary, flag_outliers, lookup_counties, pearson_correlation


@dataclass
class AnalysisResult:
    counties: pd.DataFrame
    national: NationalReference
    correlation: dict
    outliers: pd.DataFrame
    highlights: pd.DataFrame
    summary: pd.DataFrame


def build_provider(source=DATA_SOURCE):
    if source == 'sql':
        return SqlDataProvider(DATABASE_URL, INCOME_WORKBOOK)
    if source == 'files':
        return FrameDataProvider.from_files(COUNTY_CSV, DEATHS_CSV, INCOME_WORKBOOK)
    raise ValueError(f"Unknown data source '{source}' (expected 'sql' or 'files')")


def analyze(provider, snapshot_date=SNAPSHOT_DATE, iqr_multiplier=IQR_MULTIPLIER,
            confidence_level=CONFIDENCE_LEVEL, highlight_fips=HIGHLIGHT_FIPS,
            expected_min_rows=None):
    """
    Runs the full pipeline over one provider: load, clean, join, rate,
    classify, then correlation / outliers / highlights / category summary.
    """
    # All three sources are read before any transformation
    print("Loading county attributes...")
    raw_counties = provider.county_attributes()
    print(f"Loading deaths for {snapshot_date}...")
    raw_deaths = provider.county_deaths(snapshot_date)
    print("Loading national median income...")
    median_income = provider.national_income()

    print("Cleaning...")
    counties = clean_county_attributes(raw_counties)
    deaths = clean_county_deaths(raw_deaths)

    print("Joining county attributes with deaths...")
    joined = join_county_deaths(counties, deaths, expected_min_rows=expected_min_rows)
    joined = add_death_rate(joined)

    national = national_reference(joined, median_income)
    print(f"  National median income: ${national.median_income:,.0f}")
    print(f"  National death rate: {national.mortality_rate:.2f} per {RATE_PER:,}")

    print("Classifying counties...")
    classified = check_rates(classify_counties(joined, national))

    print("Calculating statistics...")
    correlation = pearson_correlation(classified, confidence_level=confidence_level)
    outliers = flag_outliers(classified, multiplier=iqr_multiplier)
    highlights = lookup_counties(classified, highlight_fips)
    summary = category_summary(classified)

    return AnalysisResult(
        counties=classified,
        national=national,
        correlation=correlation,
        outliers=outliers,
        highlights=highlights,
        summary=summary,
    )


def print_report(result):
    corr = result.correlation
    print(f"\nCounties analysed: {len(result.counties):,}")
    print(f"Pearson r (income vs death rate): {corr['r']:.3f} "
          f"[{corr['confidence_level']:.0%} CI {corr['ci_low']:.3f}, {corr['ci_high']:.3f}], "
          f"p = {corr['p_value']:.3g}, n = {corr['n']}")
    print(f"IQR outliers: {int(result.outliers['is_outlier'].sum())}")
    print("\nCategory summary:")
    print(result.summary.to_string(index=False))


def main():
    print(f"Starting COVID-19 Income/Mortality Analysis for {SNAPSHOT_DATE}...")

    try:
        provider = build_provider()
        result = analyze(provider, expected_min_rows=MIN_EXPECTED_COUNTIES)
        print_report(result)

        print("Rendering scatter plot...")
        scatter = income_death_rate_scatter(result.counties, result.outliers, HIGHLIGHT_FIPS, result.national)

        print("Applying geometry...")
        map_gdf = attach_geometry(get_county_geometry(), result.counties)
        county_map = category_choropleth(map_gdf)
    except (DataSourceError, DataValidationError) as e:
        print(f"CRITICAL ERROR: {e}")
        raise SystemExit(1)

    print(f"Exporting results to {OUTPUT_DIR}...")
    export_results(
        result,
        OUTPUT_DIR,
        f"COVID_Income_{SNAPSHOT_DATE}",
        scatter=scatter,
        county_map=county_map,
        map_gdf=map_gdf,
        formats=['csv', 'html', 'geojson']
    )

    print("Analysis Complete.")


if __name__ == "__main__":
    main()
