import numpy as np
import pandas as pd
import pytest

from analysis_utils import (
    CATEGORY_CODES, DataValidationError, NationalReference, add_death_rate,
    category_to_code, check_rates, classify_counties, classify_county,
    clean_county_attributes, clean_county_deaths, code_to_category,
    join_county_deaths, national_mortality_rate, national_reference,
    validate_no_missing
)
from covid_config import CATEGORY_ORDER, COUNTY_FIELDS


# --- Cleaning ---
def test_clean_projects_and_renames(raw_counties):
    df = clean_county_attributes(raw_counties)
    assert list(df.columns) == COUNTY_FIELDS
    assert df['fips'].dtype.kind == 'i'
    assert 'county_fips' not in df.columns


def test_clean_drops_territories(raw_counties):
    df = clean_county_attributes(raw_counties)
    assert 'PR' not in set(df['state_code'])
    assert 72001 not in set(df['fips'])
    assert len(df) == len(raw_counties) - 1


@pytest.mark.parametrize('code', ['AS', 'GU', 'MP', 'PR', 'VI'])
def test_every_territory_code_is_excluded(raw_counties, code):
    raw_counties.loc[0, 'state_code'] = code
    df = clean_county_attributes(raw_counties)
    assert code not in set(df['state_code'])


def test_territory_rows_removed_before_completeness_check(raw_counties):
    # A PR row with a missing value is removed, not reported
    raw_counties.loc[raw_counties['state_code'] == 'PR', 'income_household_median'] = np.nan
    df = clean_county_attributes(raw_counties)
    assert 72001 not in set(df['fips'])


def test_clean_missing_value_fails_loudly(raw_counties):
    raw_counties.loc[2, 'income_household_median'] = np.nan
    with pytest.raises(DataValidationError, match='income_household_median'):
        clean_county_attributes(raw_counties)


def test_clean_missing_column(raw_counties):
    with pytest.raises(DataValidationError, match='population_density'):
        clean_county_attributes(raw_counties.drop(columns='population_density'))


def test_clean_duplicate_fips(raw_counties):
    raw_counties.loc[1, 'county_fips'] = 1001
    with pytest.raises(DataValidationError, match='duplicate'):
        clean_county_attributes(raw_counties)


def test_clean_negative_population(raw_counties):
    raw_counties.loc[1, 'population'] = -5
    with pytest.raises(DataValidationError, match='negative population'):
        clean_county_attributes(raw_counties)


def test_clean_deaths_missing_value(snapshot_deaths):
    snapshot_deaths.loc[0, 'deaths'] = np.nan
    with pytest.raises(DataValidationError, match='county deaths.*deaths'):
        clean_county_deaths(snapshot_deaths)


def test_clean_deaths_projects(snapshot_deaths):
    df = clean_county_deaths(snapshot_deaths)
    assert list(df.columns) == ['fips', 'date', 'cases', 'deaths']


def test_validate_no_missing_names_table():
    df = pd.DataFrame({'a': [1, None], 'b': [1, 2]})
    with pytest.raises(DataValidationError, match=r'widgets: missing values in field\(s\) a \(1\)'):
        validate_no_missing(df, 'widgets')


# --- Join ---
def test_join_inner_sorted(raw_counties, snapshot_deaths):
    joined = join_county_deaths(clean_county_attributes(raw_counties), clean_county_deaths(snapshot_deaths))
    assert joined['fips'].is_monotonic_increasing
    assert 2999 not in set(joined['fips'])
    assert 99999 not in set(joined['fips'])
    assert 72001 not in set(joined['fips'])
    assert len(joined) == 9
    assert list(joined.index) == list(range(9))


def test_join_reports_unmatched(raw_counties, snapshot_deaths, capsys):
    join_county_deaths(clean_county_attributes(raw_counties), clean_county_deaths(snapshot_deaths))
    out = capsys.readouterr().out
    # 2999 has no deaths; 72001 (territory) and 99999 have no county
    assert '1 without deaths, 2 deaths rows without county attributes' in out


def test_join_zero_rows_is_fatal(raw_counties, snapshot_deaths):
    deaths = clean_county_deaths(snapshot_deaths)
    deaths['fips'] = deaths['fips'] + 100000
    with pytest.raises(DataValidationError, match='zero rows'):
        join_county_deaths(clean_county_attributes(raw_counties), deaths)


def test_join_warns_when_few_rows(raw_counties, snapshot_deaths, capsys):
    join_county_deaths(clean_county_attributes(raw_counties), clean_county_deaths(snapshot_deaths),
                       expected_min_rows=3000)
    assert 'Warning: Join produced only 9 counties' in capsys.readouterr().out


# --- Rate ---
def _joined(raw_counties, snapshot_deaths):
    return join_county_deaths(clean_county_attributes(raw_counties), clean_county_deaths(snapshot_deaths))


def test_death_rate_formula_and_position(raw_counties, snapshot_deaths):
    df = add_death_rate(_joined(raw_counties, snapshot_deaths))
    expected = (df['deaths'] / df['population'] * 100000).round(2)
    assert (df['death_rate'] == expected).all()
    cols = list(df.columns)
    assert cols.index('death_rate') == cols.index('deaths') + 1
    assert df.set_index('fips').loc[1001, 'death_rate'] == 50.0
    assert (df['population'] > 0).all()


def test_zero_population_is_excluded(raw_counties, snapshot_deaths, capsys):
    raw_counties.loc[raw_counties['county_fips'] == 48301, 'population'] = 0
    df = add_death_rate(_joined(raw_counties, snapshot_deaths))
    assert 48301 not in set(df['fips'])
    assert np.isfinite(df['death_rate']).all()
    assert 'Excluding 1 counties with zero population' in capsys.readouterr().out


def test_death_rate_rounding():
    df = pd.DataFrame({'fips': [1], 'population': [3], 'deaths': [1]})
    assert add_death_rate(df).loc[0, 'death_rate'] == 33333.33


def test_national_mortality_rate_is_population_weighted():
    df = pd.DataFrame({'population': [100000, 300000], 'deaths': [10, 90]})
    # Unweighted mean of rates would be 20.0
    assert national_mortality_rate(df) == pytest.approx(25.0)


def test_national_reference(raw_counties, snapshot_deaths):
    df = add_death_rate(_joined(raw_counties, snapshot_deaths))
    national = national_reference(df, 65000)
    assert national.median_income == 65000.0
    assert national.mortality_rate == pytest.approx(445 / 2176000 * 100000)


# --- Classification ---
def test_end_to_end_scenario():
    assert classify_county(40000, 50.00, 65000, 20.00) == "Low Income, High Death Rate"
    assert classify_county(90000, 5.00, 65000, 20.00) == "High Income, Low Death Rate"


def test_boundary_income_is_high():
    assert classify_county(65000, 5.0, 65000, 20.0) == "High Income, Low Death Rate"
    assert classify_county(64999.99, 5.0, 65000, 20.0) == "Low Income, Low Death Rate"


def test_boundary_death_rate_is_high():
    assert classify_county(40000, 20.0, 65000, 20.0) == "Low Income, High Death Rate"
    assert classify_county(40000, 19.99, 65000, 20.0) == "Low Income, Low Death Rate"


def test_classification_partition_is_exhaustive_and_disjoint(raw_counties, snapshot_deaths):
    df = add_death_rate(_joined(raw_counties, snapshot_deaths))
    national = national_reference(df, 65000)
    classified = classify_counties(df, national)

    rules = {
        "Low Income, Low Death Rate": lambda r: r.income_household_median < 65000 and r.death_rate < national.mortality_rate,
        "Low Income, High Death Rate": lambda r: r.income_household_median < 65000 and r.death_rate >= national.mortality_rate,
        "High Income, Low Death Rate": lambda r: r.income_household_median >= 65000 and r.death_rate < national.mortality_rate,
        "High Income, High Death Rate": lambda r: r.income_household_median >= 65000 and r.death_rate >= national.mortality_rate,
    }
    for row in classified.itertuples():
        matched = [label for label, rule in rules.items() if rule(row)]
        assert matched == [row.category]
        assert row.category_code == CATEGORY_CODES[row.category]


def test_classify_uses_given_thresholds(raw_counties, snapshot_deaths):
    df = add_death_rate(_joined(raw_counties, snapshot_deaths))
    national = NationalReference(median_income=65000, mortality_rate=20.0)
    subset = classify_counties(df.head(2), national)
    assert subset['category'].tolist() == ["Low Income, High Death Rate", "High Income, Low Death Rate"]


def test_classify_does_not_mutate_input(raw_counties, snapshot_deaths):
    df = add_death_rate(_joined(raw_counties, snapshot_deaths))
    classify_counties(df, NationalReference(65000, 20.0))
    assert 'category' not in df.columns


def test_category_code_round_trip():
    for code in range(1, 5):
        assert category_to_code(code_to_category(code)) == code
    for label in CATEGORY_ORDER:
        assert code_to_category(category_to_code(label)) == label


def test_category_codes_follow_fixed_order():
    assert code_to_category(1) == "Low Income, Low Death Rate"
    assert code_to_category(2) == "Low Income, High Death Rate"
    assert code_to_category(3) == "High Income, Low Death Rate"
    assert code_to_category(4) == "High Income, High Death Rate"


def test_unknown_category_raises():
    with pytest.raises(KeyError):
        code_to_category(5)
    with pytest.raises(KeyError):
        category_to_code("Medium Income, Low Death Rate")


def test_check_rates_rejects_non_finite():
    df = pd.DataFrame({'death_rate': [1.0, np.inf]})
    with pytest.raises(DataValidationError):
        check_rates(df)


def test_clean_with_both_identifier_columns(raw_counties):
    raw_counties['fips'] = raw_counties['county_fips']
    df = clean_county_attributes(raw_counties)
    assert list(df.columns) == COUNTY_FIELDS
    assert 1001 in set(df['fips'])


def test_clean_with_conflicting_identifier_columns(raw_counties):
    raw_counties['fips'] = raw_counties['county_fips'] + 1
    with pytest.raises(DataValidationError, match='ambiguous identifier'):
        clean_county_attributes(raw_counties)
