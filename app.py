import datetime

import streamlit as st
from streamlit_folium import st_folium

from covid_config import *
from analysis_utils import DataValidationError
from data_loader import DataSourceError
from geo_utils import attach_geometry, get_county_geometry
from plot_utils import category_choropleth, income_death_rate_scatter
from run_analysis import analyze, build_provider

st.set_page_config(layout="wide", page_title="COVID-19 Mortality vs Income")


@st.cache_data
def run_cached(snapshot_date, iqr_multiplier):
    return analyze(build_provider(), snapshot_date=snapshot_date, iqr_multiplier=iqr_multiplier,
                   expected_min_rows=MIN_EXPECTED_COUNTIES)


@st.cache_data
def load_geometry():
    return get_county_geometry()


@st.cache_data
def convert_df(df): return df.to_csv(index=False).encode('utf-8')


# --- UI Layout ---
with st.sidebar:
    st.title("🦠 Analysis Settings")
    snapshot = st.date_input("Snapshot date", value=datetime.date.fromisoformat(SNAPSHOT_DATE))
    iqr_multiplier = st.slider("IQR multiplier", min_value=1.0, max_value=3.0, value=IQR_MULTIPLIER, step=0.5)
    st.caption(f"Data source: {DATA_SOURCE}")
    st.caption(f"Excluded territories: {', '.join(sorted(TERRITORY_CODES))}")

status = st.status(f"Analysing counties for {snapshot}...", expanded=False)
try:
    result = run_cached(snapshot.isoformat(), iqr_multiplier)
except (DataSourceError, DataValidationError) as e:
    status.update(label="Analysis failed", state="error")
    st.error(str(e))
    st.stop()

if len(result.counties) < MIN_EXPECTED_COUNTIES:
    st.warning(f"Only {len(result.counties):,} counties survived the join (expected at least {MIN_EXPECTED_COUNTIES:,}).")
status.update(label="Analysis complete", state="complete")

# 1. Header Metrics
corr = result.correlation
m1, m2, m3, m4 = st.columns(4)
m1.metric("Counties", f"{len(result.counties):,}")
m2.metric("National Death Rate", f"{result.national.mortality_rate:.2f} / 100k")
m3.metric("National Median Income", f"${result.national.median_income:,.0f}")
m4.metric("Pearson r", f"{corr['r']:.3f}", help=f"p = {corr['p_value']:.3g}, "
          f"{corr['confidence_level']:.0%} CI [{corr['ci_low']:.3f}, {corr['ci_high']:.3f}]")
st.divider()

col_scatter, col_map = st.columns([1, 1])

# 2. Scatter (Left Column)
with col_scatter:
    scatter = income_death_rate_scatter(result.counties, result.outliers, HIGHLIGHT_FIPS, result.national)
    st.plotly_chart(scatter, use_container_width=True)

# 3. Map (Right Column)
with col_map:
    try:
        map_gdf = attach_geometry(load_geometry(), result.counties)
    except DataSourceError as e:
        st.error(str(e))
    else:
        missing = len(result.counties) - len(map_gdf)
        if missing:
            st.caption(f"{missing} counties have no boundary polygon and are not shown.")
        st_folium(category_choropleth(map_gdf), width="100%", height=600, returned_objects=[])

# 4. Tables
tab_summary, tab_outliers, tab_highlights, tab_data = st.tabs(
    ["📈 Category Summary", "⚠️ Outliers", "📍 Highlighted Counties", "📋 County Data"]
)

with tab_summary:
    st.dataframe(result.summary, use_container_width=True, hide_index=True)

with tab_outliers:
    flagged = result.outliers[result.outliers['is_outlier']]
    outlier_df = result.counties.merge(flagged, on='fips', how='inner')
    if outlier_df.empty:
        st.success("No statistical outliers detected.")
    else:
        st.warning(f"Detected {len(outlier_df)} outlier counties (IQR x {iqr_multiplier}).")
        st.dataframe(outlier_df, use_container_width=True, hide_index=True)

with tab_highlights:
    st.dataframe(result.highlights, use_container_width=True, hide_index=True)

with tab_data:
    st.dataframe(result.counties, use_container_width=True, height=450, hide_index=True)
    st.download_button("📥 Download CSV", convert_df(result.counties),
                       f"COVID_Income_{snapshot.isoformat()}.csv", "text/csv")
