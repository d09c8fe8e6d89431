import numpy as np
import pandas as pd
from scipy import stats

from analysis_utils import DataValidationError
from covid_config import CATEGORY_ORDER, CONFIDENCE_LEVEL, COUNTY_ID, IQR_MULTIPLIER, RATE_PER


def pearson_correlation(df, x='income_household_median', y='death_rate', confidence_level=CONFIDENCE_LEVEL):
    """
    Pearson product-moment correlation between two columns.
    Two-sided t-test p-value and Fisher-z confidence interval (scipy.stats.pearsonr).
    """
    pairs = df[[x, y]].astype(float)
    pairs = pairs[np.isfinite(pairs[x]) & np.isfinite(pairs[y])]
    n = len(pairs)
    if n < 4:
        raise DataValidationError(f"Correlation needs at least 4 complete pairs, got {n}.")

    result = stats.pearsonr(pairs[x], pairs[y], alternative='two-sided')
    ci = result.confidence_interval(confidence_level=confidence_level)

    return {
        'x': x,
        'y': y,
        'n': n,
        'r': float(result.statistic),
        'ci_low': float(ci.low),
        'ci_high': float(ci.high),
        'confidence_level': confidence_level,
        'p_value': float(result.pvalue),
        'alternative': 'two-sided',
    }


def iqr_bounds(values, multiplier=IQR_MULTIPLIER):
    """
    Tukey fences: Q1 - k*IQR and Q3 + k*IQR.
    Quartiles use pandas' default linear interpolation.
    """
    values = pd.Series(values, dtype=float)
    q1 = values.quantile(0.25)
    q3 = values.quantile(0.75)
    iqr = q3 - q1
    return q1 - multiplier * iqr, q3 + multiplier * iqr


def iqr_outliers(values, multiplier=IQR_MULTIPLIER):
    values = pd.Series(values, dtype=float)
    lower, upper = iqr_bounds(values, multiplier)
    return (values < lower) | (values > upper)


def flag_outliers(df, columns=('death_rate', 'income_household_median'), multiplier=IQR_MULTIPLIER):
    """
    Univariate IQR test per column; a county is an outlier if any column flags it.
    """
    flags = pd.DataFrame({COUNTY_ID: df[COUNTY_ID].values}, index=df.index)
    for col in columns:
        flags[f'{col}_outlier'] = iqr_outliers(df[col], multiplier).values

    flag_cols = [f'{col}_outlier' for col in columns]
    flags['is_outlier'] = flags[flag_cols].any(axis=1)
    return flags


def lookup_counties(df, fips_codes):
    """
    Returns the rows for a fixed set of counties, in the order requested.
    Unknown codes are reported and skipped.
    """
    fips_codes = [int(f) for f in fips_codes]
    indexed = df.set_index(COUNTY_ID, drop=False)
    missing = [f for f in fips_codes if f not in indexed.index]
    if missing:
        print(f"Warning: Highlight fips not found in joined data: {missing}")
    found = [f for f in fips_codes if f in indexed.index]
    return indexed.loc[found].reset_index(drop=True)


def category_summary(df):
    """
    Per-category totals in ordinal order. Categories with no counties are kept
    with zero counts so the table always has four rows.
    """
    grouped = df.groupby('category')
    summary = pd.DataFrame({
        'Counties': grouped.size(),
        'Population': grouped['population'].sum(),
        'Cases': grouped['cases'].sum(),
        'Deaths': grouped['deaths'].sum(),
        'Mean_Death_Rate': grouped['death_rate'].mean().round(2),
        'Median_Income': grouped['income_household_median'].median(),
    })
    summary = summary.reindex(CATEGORY_ORDER)
    count_cols = ['Counties', 'Population', 'Cases', 'Deaths']
    summary[count_cols] = summary[count_cols].fillna(0).astype(int)

    summary['Pooled_Death_Rate'] = np.where(
        summary['Population'] > 0,
        summary['Deaths'] / summary['Population'].where(summary['Population'] > 0, 1) * RATE_PER,
        np.nan
    ).round(2)
    total = summary['Counties'].sum()
    summary['Share_Pct'] = (summary['Counties'] / total * 100).round(1) if total else 0.0

    summary.index.name = 'Category'
    summary.insert(0, 'Code', range(1, len(CATEGORY_ORDER) + 1))
    return summary.reset_index()
