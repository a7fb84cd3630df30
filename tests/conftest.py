import os
import sys
import tempfile
from dataclasses import replace
from datetime import date
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(ROOT / 'src'))

# Settings are read at import time
_tmp = tempfile.mkdtemp(prefix="premium-tests-")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DATA_DIR"] = str(Path(_tmp) / "data")
os.environ["OUTPUT_DIR"] = str(Path(_tmp) / "output")

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from database.db import init_db  # noqa: E402
from database.repository import PremiumRepository  # noqa: E402
from api.mock_hr_system import MockHRSystem  # noqa: E402
from models.employee import EmployeeInsuranceProfile, MonthlySalary  # noqa: E402
from processors.calculation_lifecycle import CalculationLifecycleManager  # noqa: E402

ORG_ID = MockHRSystem.ORGANIZATION["organization_id"]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def repo(db_session):
    return PremiumRepository(db_session)


@pytest.fixture
def hr():
    return MockHRSystem()


@pytest.fixture
def seeded_repo(repo, hr):
    """Mock organization, employees and rate table with October 2024 compensation"""
    hr.seed(repo, 2024, 10)
    return repo


@pytest.fixture
def lifecycle(seeded_repo):
    return CalculationLifecycleManager(seeded_repo)


@pytest.fixture
def make_employee(seeded_repo):
    """Store an extra employee in the mock organization"""
    counter = {"n": 100}

    def _make(**overrides):
        counter["n"] += 1
        n = counter["n"]
        profile = EmployeeInsuranceProfile(
            employee_id=f"emp-{n}",
            organization_id=ORG_ID,
            employee_number=f"T{n}",
            name=f"Test Employee {n}",
            birth_date=date(1990, 1, 1),
            join_date=date(2020, 4, 1),
            standard_reward=300000,
        )
        profile = replace(profile, **overrides)
        seeded_repo.save_employee(profile)
        return profile

    return _make


@pytest.fixture
def add_salary(seeded_repo):
    def _add(employee_id, year, month, amount, confirmed=True):
        seeded_repo.save_monthly_salary(MonthlySalary(employee_id, year, month, amount, confirmed))

    return _add
