"""
Renderers for the classified county table: income vs. death rate scatter
(plotly) and the income/mortality category choropleth (folium).
"""
import folium
import plotly.express as px
from branca.element import Element

from analysis_utils import code_to_category
from covid_config import CATEGORY_COLORS, COUNTY_ID, MISSING_COLOR

POINT_TYPES = ['County', 'Outlier', 'Highlighted']
POINT_COLORS = {'County': 'lightblue', 'Outlier': 'red', 'Highlighted': 'black'}


def _point_types(df, outliers, highlight_fips):
    """Highlighted wins over Outlier, Outlier over plain County."""
    outlier_fips = set(outliers.loc[outliers['is_outlier'], COUNTY_ID])
    highlight_fips = {int(f) for f in highlight_fips}

    def get_type(fips):
        if fips in highlight_fips: return 'Highlighted'
        if fips in outlier_fips: return 'Outlier'
        return 'County'

    return df[COUNTY_ID].map(get_type)


def income_death_rate_scatter(df, outliers, highlight_fips, national):
    """Scatter of median household income vs. death rate with national threshold lines."""
    df_plot = df.copy()
    df_plot['Point_Type'] = _point_types(df_plot, outliers, highlight_fips)

    fig = px.scatter(
        df_plot,
        x='income_household_median',
        y='death_rate',
        color='Point_Type',
        hover_name='county_name',
        hover_data={
            COUNTY_ID: True,
            'state_code': True,
            'population': ':,',
            'deaths': ':,',
            'income_household_median': ':$,',
            'death_rate': ':.2f',
            'category': True,
            'Point_Type': False,
        },
        category_orders={'Point_Type': POINT_TYPES},
        color_discrete_map=POINT_COLORS,
        title='Median Household Income vs COVID-19 Death Rate',
        labels={
            'income_household_median': 'Median Household Income ($)',
            'death_rate': 'Deaths per 100,000',
            'Point_Type': '',
        },
    )

    fig.add_vline(x=national.median_income, line_dash='dash', line_color='gray',
                  annotation_text=f"National median income ${national.median_income:,.0f}")
    fig.add_hline(y=national.mortality_rate, line_dash='dash', line_color='gray',
                  annotation_text=f"National rate {national.mortality_rate:.2f}")

    # Label highlighted counties directly on the plot
    for _, row in df_plot[df_plot['Point_Type'] == 'Highlighted'].iterrows():
        fig.add_annotation(x=row['income_household_median'], y=row['death_rate'],
                           text=f"{row['county_name']}, {row['state_code']}",
                           showarrow=True, arrowhead=1)

    fig.update_layout(height=600)
    return fig


def category_legend_html(colors=CATEGORY_COLORS):
    """Ordered legend; labels come from the ordinal codes."""
    items = "".join(
        f'<div><span style="background:{colors[code]};width:14px;height:14px;'
        f'display:inline-block;margin-right:6px;"></span>{code_to_category(code)}</div>'
        for code in sorted(colors)
    )
    return (
        '<div style="position: fixed; bottom: 30px; left: 30px; z-index: 9999; '
        'background: white; padding: 8px 10px; border: 1px solid #999; font-size: 13px;">'
        f'<b>Income / Death Rate</b>{items}</div>'
    )


def category_style(feature):
    """Fill color for one county feature, keyed by its category_code."""
    code = feature['properties'].get('category_code')
    return {
        'fillColor': CATEGORY_COLORS.get(code, MISSING_COLOR),
        'color': 'white',
        'weight': 0.3,
        'fillOpacity': 0.8,
    }


def category_choropleth(map_gdf, location=(39.8, -98.6), zoom_start=4):
    """
    Folium choropleth of counties colored by category_code.
    Expects the output of geo_utils.attach_geometry.
    """
    m = folium.Map(location=list(location), zoom_start=zoom_start)

    keep = [COUNTY_ID, 'county_name', 'state_code', 'income_household_median',
            'death_rate', 'category', 'category_code', 'geometry']
    layer = map_gdf[[c for c in keep if c in map_gdf.columns]]

    geo = folium.GeoJson(
        layer.to_json(),
        name='Income / Death Rate Category',
        style_function=category_style,
    )
    geo.add_child(folium.features.GeoJsonTooltip(
        fields=['county_name', 'state_code', 'income_household_median', 'death_rate', 'category'],
        aliases=['County', 'State', 'Median Income', 'Deaths per 100k', 'Category'],
        labels=True,
    ))
    geo.add_to(m)

    m.get_root().html.add_child(Element(category_legend_html()))
    return m

