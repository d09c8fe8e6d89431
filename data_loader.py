import re
import zipfile

import pandas as pd
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from covid_config import (
    COUNTY_TABLE, DATABASE_URL, DEATHS_TABLE, INCOME_WORKBOOK, NATIONAL_INCOME_LABEL
)


class DataSourceError(RuntimeError):
    """Raised when an external source cannot be reached or read."""


def _norm(s):
    return re.sub(r"[^a-z0-9]+", "", str(s).lower())


def _parse_money(value):
    """'$69,021' -> 69021.0; numbers pass through."""
    if isinstance(value, str):
        value = value.replace('$', '').replace(',', '').strip()
    return pd.to_numeric(value, errors='coerce')


def read_national_income(path=INCOME_WORKBOOK, label=NATIONAL_INCOME_LABEL, position=0, sheet_name=0):
    """
    Reads the national median household income from a (region, income) workbook.
    The first two columns are taken as region and income. The national row is
    found by label (case/punctuation-insensitive), or by position when label is None.
    """
    try:
        df = pd.read_excel(path, sheet_name=sheet_name, engine="openpyxl")
    except (OSError, ValueError, zipfile.BadZipFile) as e:
        raise DataSourceError(f"Could not read income workbook {path}: {e}") from e

    if df.shape[1] < 2:
        raise DataSourceError(f"Income workbook {path} needs (region, income) columns, found {list(df.columns)}")

    regions = df.iloc[:, 0]
    incomes = df.iloc[:, 1]

    if label is not None:
        matches = regions.map(_norm) == _norm(label)
        if not matches.any():
            raise DataSourceError(f"Row '{label}' not found in income workbook {path}")
        raw_value = incomes[matches].iloc[0]
    else:
        if position >= len(df):
            raise DataSourceError(f"Income workbook {path} has no row at position {position}")
        raw_value = incomes.iloc[position]

    value = _parse_money(raw_value)
    if pd.isna(value):
        raise DataSourceError(f"National median income is not numeric: {raw_value!r}")
    return float(value)


class SqlDataProvider:
    """
    Reads the county tables from a SQL database and the national income from a workbook.
    Each query opens its own connection and releases it before returning.
    """

    def __init__(self, database_url=DATABASE_URL, income_path=INCOME_WORKBOOK,
                 county_table=COUNTY_TABLE, deaths_table=DEATHS_TABLE,
                 income_label=NATIONAL_INCOME_LABEL, engine=None):
        self.database_url = database_url
        self.income_path = income_path
        self.county_table = county_table
        self.deaths_table = deaths_table
        self.income_label = income_label
        self._engine = engine

    def _query(self, sql, params=None):
        engine = self._engine
        try:
            if engine is None:
                engine = create_engine(self.database_url)
            with engine.connect() as conn:
                return pd.read_sql(text(sql), conn, params=params)
        except (SQLAlchemyError, ImportError) as e:
            # Bad URL or missing DB driver surfaces here too
            raise DataSourceError(f"Query failed against {self.database_url if engine is None else engine.url}: {e}") from e
        finally:
            # Injected engines belong to the caller
            if self._engine is None and engine is not None:
                engine.dispose()

    def county_attributes(self):
        return self._query(f"SELECT * FROM {self.county_table}")

    def county_deaths(self, snapshot_date):
        sql = f"SELECT fips, date, cases, deaths FROM {self.deaths_table} WHERE date = :snapshot_date"
        return self._query(sql, {'snapshot_date': str(snapshot_date)})

    def national_income(self):
        return read_national_income(self.income_path, label=self.income_label)


class FrameDataProvider:
    """
    Serves already-loaded tables. The deaths frame may hold several dates;
    county_deaths() keeps only the requested snapshot.
    """

    def __init__(self, counties, deaths, median_income):
        self.counties = counties
        self.deaths = deaths
        self.median_income = median_income

    @classmethod
    def from_files(cls, county_csv, deaths_csv, income_path=INCOME_WORKBOOK, income_label=NATIONAL_INCOME_LABEL):
        try:
            counties = pd.read_csv(county_csv)
            deaths = pd.read_csv(deaths_csv, dtype={'date': str})
        except OSError as e:
            raise DataSourceError(f"Could not read county data files: {e}") from e
        return cls(counties, deaths, read_national_income(income_path, label=income_label))

    def county_attributes(self):
        return self.counties.copy()

    def county_deaths(self, snapshot_date):
        deaths = self.deaths
        if 'date' in deaths.columns:
            deaths = deaths[deaths['date'].astype(str) == str(snapshot_date)]
        return deaths.copy()

    def national_income(self):
        return float(self.median_income)
