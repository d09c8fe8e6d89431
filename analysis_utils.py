from dataclasses import dataclass

import numpy as np
import pandas as pd

from covid_config import (
    CATEGORY_ORDER, COUNTY_FIELDS, COUNTY_ID, COUNTY_ID_SOURCE,
    DEATH_FIELDS, RATE_PER, TERRITORY_CODES
)


class DataValidationError(ValueError):
    """Raised when a table fails a completeness or consistency check."""


@dataclass(frozen=True)
class NationalReference:
    """National thresholds, computed once per run."""
    median_income: float
    mortality_rate: float


# ---------------------------------------------------------------------------
# CLEANING
# ---------------------------------------------------------------------------
def _require_columns(df, columns, table_name):
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise DataValidationError(
            f"{table_name}: missing required column(s) {missing}. Available={list(df.columns)}"
        )


def _to_fips(df, table_name):
    """Coerce the identifier column to int, refusing non-numeric codes."""
    fips = pd.to_numeric(df[COUNTY_ID], errors='coerce')
    bad = df.loc[fips.isna() & df[COUNTY_ID].notna(), COUNTY_ID]
    if not bad.empty:
        raise DataValidationError(
            f"{table_name}: non-numeric {COUNTY_ID} value(s) {bad.unique().tolist()[:10]}"
        )
    return fips


def validate_no_missing(df, table_name):
    """
    Fails loudly if any retained field has a missing value.
    Downstream division and comparisons assume a complete table.
    """
    counts = df.isna().sum()
    counts = counts[counts > 0]
    if not counts.empty:
        detail = ", ".join(f"{col} ({n})" for col, n in counts.items())
        raise DataValidationError(f"{table_name}: missing values in field(s) {detail}")
    return df


def _validate_non_negative(df, columns, table_name):
    for col in columns:
        negative = df[df[col] < 0]
        if not negative.empty:
            raise DataValidationError(
                f"{table_name}: negative {col} for {COUNTY_ID} {negative[COUNTY_ID].tolist()[:10]}"
            )


def _validate_unique(df, table_name):
    dupes = df.loc[df[COUNTY_ID].duplicated(), COUNTY_ID]
    if not dupes.empty:
        raise DataValidationError(
            f"{table_name}: duplicate {COUNTY_ID} value(s) {dupes.unique().tolist()[:10]}"
        )


def clean_county_attributes(raw):
    """
    Narrows the raw county reference table to the fields used downstream.
    1. Aligns the identifier name with the deaths table (county_fips -> fips).
    2. Projects to COUNTY_FIELDS.
    3. Drops non-state territories.
    4. Verifies completeness.
    """
    df = raw
    if COUNTY_ID_SOURCE in df.columns and COUNTY_ID in df.columns:
        # Both identifiers present: keep one, but only if they agree
        source = pd.to_numeric(df[COUNTY_ID_SOURCE], errors='coerce')
        target = pd.to_numeric(df[COUNTY_ID], errors='coerce')
        if not ((source == target) | (source.isna() & target.isna())).all():
            raise DataValidationError(
                f"county attributes: ambiguous identifier, {COUNTY_ID_SOURCE} and {COUNTY_ID} disagree"
            )
        df = df.drop(columns=COUNTY_ID)
    df = df.rename(columns={COUNTY_ID_SOURCE: COUNTY_ID})
    _require_columns(df, COUNTY_FIELDS, 'county attributes')
    df = df[COUNTY_FIELDS].copy()

    before = len(df)
    df = df[~df['state_code'].isin(TERRITORY_CODES)]
    dropped = before - len(df)
    if dropped:
        print(f"  Removed {dropped} territory rows ({', '.join(sorted(TERRITORY_CODES))}).")

    validate_no_missing(df, 'county attributes')

    df[COUNTY_ID] = _to_fips(df, 'county attributes').astype(int)
    for col in ['population', 'population_density', 'income_household_median']:
        df[col] = pd.to_numeric(df[col], errors='coerce')
    # Coercion can expose unparseable text as missing
    validate_no_missing(df, 'county attributes')
    df['population'] = df['population'].astype(int)

    _validate_unique(df, 'county attributes')
    _validate_non_negative(df, ['population', 'income_household_median'], 'county attributes')

    return df.reset_index(drop=True)


def clean_county_deaths(raw):
    """Projects the deaths snapshot to fips/date/cases/deaths and validates it."""
    _require_columns(raw, DEATH_FIELDS, 'county deaths')
    df = raw[DEATH_FIELDS].copy()
    validate_no_missing(df, 'county deaths')

    df[COUNTY_ID] = _to_fips(df, 'county deaths').astype(int)
    for col in ['cases', 'deaths']:
        df[col] = pd.to_numeric(df[col], errors='coerce')
    validate_no_missing(df, 'county deaths')
    df['cases'] = df['cases'].astype(int)
    df['deaths'] = df['deaths'].astype(int)

    _validate_unique(df, 'county deaths')
    _validate_non_negative(df, ['cases', 'deaths'], 'county deaths')

    return df.reset_index(drop=True)


# ---------------------------------------------------------------------------
# JOIN & RATE
# ---------------------------------------------------------------------------
def join_county_deaths(counties, deaths, expected_min_rows=None):
    """
    Inner joins cleaned county attributes with the deaths snapshot on fips.
    Rows present on only one side are dropped; the counts are reported.
    """
    merged = pd.merge(counties, deaths, on=COUNTY_ID, how='outer', indicator=True)

    only_counties = merged.loc[merged['_merge'] == 'left_only', COUNTY_ID]
    only_deaths = merged.loc[merged['_merge'] == 'right_only', COUNTY_ID]
    print(f"  Unmatched counties: {len(only_counties)} without deaths, "
          f"{len(only_deaths)} deaths rows without county attributes.")
    if len(only_counties):
        print(f"    County-only fips: {sorted(only_counties.astype(int).tolist())[:20]}")
    if len(only_deaths):
        print(f"    Deaths-only fips: {sorted(only_deaths.astype(int).tolist())[:20]}")

    joined = merged[merged['_merge'] == 'both'].drop(columns='_merge')
    if joined.empty:
        raise DataValidationError("Join of county attributes and deaths produced zero rows.")
    if expected_min_rows and len(joined) < expected_min_rows:
        print(f"Warning: Join produced only {len(joined)} counties (expected at least {expected_min_rows}).")

    # Outer merge upcasts to float where one side had gaps
    joined = joined.astype({
        COUNTY_ID: int, 'population': int, 'cases': int, 'deaths': int
    })
    return joined.sort_values(COUNTY_ID).reset_index(drop=True)


def add_death_rate(df):
    """
    Adds death_rate = round(deaths / population * 100000, 2) next to deaths.
    Counties with no population are excluded instead of producing inf/NaN.
    """
    no_pop = df['population'] <= 0
    if no_pop.any():
        print(f"Warning: Excluding {int(no_pop.sum())} counties with zero population: "
              f"{df.loc[no_pop, COUNTY_ID].tolist()[:20]}")
    df = df.loc[~no_pop].copy()

    rate = (df['deaths'] / df['population'] * RATE_PER).round(2)
    if 'death_rate' in df.columns:
        df = df.drop(columns='death_rate')
    df.insert(df.columns.get_loc('deaths') + 1, 'death_rate', rate)
    return df.reset_index(drop=True)


def national_mortality_rate(df):
    """Population-weighted rate: total deaths / total population * 100000."""
    total_pop = df['population'].sum()
    if total_pop <= 0:
        raise DataValidationError("Total population is zero; national rate is undefined.")
    return float(df['deaths'].sum() / total_pop * RATE_PER)


def national_reference(df, median_income):
    return NationalReference(
        median_income=float(median_income),
        mortality_rate=national_mortality_rate(df),
    )


# ---------------------------------------------------------------------------
# CLASSIFICATION
# ---------------------------------------------------------------------------
CATEGORY_CODES = {label: i + 1 for i, label in enumerate(CATEGORY_ORDER)}
CODE_CATEGORIES = {code: label for label, code in CATEGORY_CODES.items()}


def category_to_code(label):
    return CATEGORY_CODES[label]


def code_to_category(code):
    return CODE_CATEGORIES[int(code)]


def classify_county(income, death_rate, median_income, mortality_rate):
    """
    Returns the quadrant label for one county.
    Strict less-than on both axes: a value equal to its threshold is 'High'.
    """
    income_tag = "Low Income" if income < median_income else "High Income"
    rate_tag = "Low Death Rate" if death_rate < mortality_rate else "High Death Rate"
    return f"{income_tag}, {rate_tag}"


def classify_counties(df, national):
    """
    Assigns category and category_code to every county.
    Thresholds come from `national` and are not recomputed per row.
    """
    df = df.copy()
    df['category'] = [
        classify_county(inc, rate, national.median_income, national.mortality_rate)
        for inc, rate in zip(df['income_household_median'], df['death_rate'])
    ]
    df['category_code'] = df['category'].map(CATEGORY_CODES).astype(int)
    return df


def check_rates(df):
    """Sanity check before statistics: every rate finite, every county classified."""
    if not np.isfinite(df['death_rate']).all():
        raise DataValidationError("death_rate contains non-finite values.")
    if 'category' in df.columns and not df['category'].isin(CATEGORY_ORDER).all():
        raise DataValidationError("Unclassified counties remain after classification.")
    return df
