import pandas as pd
import pytest

from data_loader import FrameDataProvider

SNAPSHOT = "2021-12-31"
MEDIAN_INCOME = 65000.0


@pytest.fixture
def raw_counties():
    """County reference table as the database returns it: extra columns, raw id name."""
    rows = [
        # county_fips, name, state, state name, population, density, income
        (1001, 'Autauga', 'AL', 'Alabama', 100000, 93.5, 40000),
        (1003, 'Baldwin', 'AL', 'Alabama', 100000, 140.3, 90000),
        (4013, 'Maricopa', 'AZ', 'Arizona', 200000, 480.1, 55000),
        (6037, 'Los Angeles', 'CA', 'California', 1000000, 2490.0, 70000),
        (13053, 'Chattahoochee', 'GA', 'Georgia', 10000, 43.2, 35000),
        (17031, 'Cook', 'IL', 'Illinois', 500000, 5400.7, 65000),
        (36047, 'Kings', 'NY', 'New York', 250000, 37000.0, 60000),
        (48301, 'Loving', 'TX', 'Texas', 1000, 0.2, 80000),
        (51610, 'Falls Church', 'VA', 'Virginia', 15000, 7100.0, 120000),
        (72001, 'Adjuntas', 'PR', 'Puerto Rico', 18000, 270.0, 20000),
        (2999, 'Nowhere', 'AK', 'Alaska', 5000, 1.1, 50000),
    ]
    df = pd.DataFrame(rows, columns=[
        'county_fips', 'county_name', 'state_code', 'state_name',
        'population', 'population_density', 'income_household_median',
    ])
    df['lat'] = 35.0
    df['lng'] = -90.0
    df['median_age'] = 38.5
    df['home_value'] = 180000
    return df


@pytest.fixture
def raw_deaths():
    rows = [
        (1001, SNAPSHOT, 9000, 50),
        (1003, SNAPSHOT, 8000, 5),
        (4013, SNAPSHOT, 30000, 60),
        (6037, SNAPSHOT, 150000, 150),
        (13053, SNAPSHOT, 900, 9),
        (17031, SNAPSHOT, 60000, 100),
        (36047, SNAPSHOT, 40000, 70),
        (48301, SNAPSHOT, 20, 0),
        (51610, SNAPSHOT, 1500, 1),
        (72001, SNAPSHOT, 2000, 30),
        (99999, SNAPSHOT, 10, 1),
        # Earlier snapshot, must be filtered out
        (1001, "2021-06-30", 4000, 20),
    ]
    df = pd.DataFrame(rows, columns=['fips', 'date', 'cases', 'deaths'])
    df['county'] = 'x'
    df['state'] = 'y'
    return df


@pytest.fixture
def snapshot_deaths(raw_deaths):
    return raw_deaths[raw_deaths['date'] == SNAPSHOT].reset_index(drop=True)


@pytest.fixture
def provider(raw_counties, raw_deaths):
    return FrameDataProvider(raw_counties, raw_deaths, MEDIAN_INCOME)
