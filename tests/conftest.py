import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENABLE_POINT_EXPIRY_JOB", "false")

from datetime import date, time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db, get_session_factory
from app.models import EmployeeSchedule, Site, User


def _make_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite 需要自行發出 BEGIN，SAVEPOINT 才能正常運作
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest.fixture()
def db():
    engine = _make_engine()
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def client(db):
    import app.main as main

    def _get_db():
        yield db

    # 背景工作與請求共用同一個 Session（StaticPool 只有一條連線）
    main.app.dependency_overrides[get_db] = _get_db
    main.app.dependency_overrides[get_session_factory] = lambda: (lambda: db)

    with TestClient(main.app) as c:
        yield c

    main.app.dependency_overrides.clear()


@pytest.fixture()
def site(db):
    return _create_site(db, "Main Office")


def _create_site(db, name):
    site = Site(name=name)
    db.add(site)
    db.commit()
    db.refresh(site)
    return site


def _create_user(db, first_name, last_name, middle_name=None):
    user = User(first_name=first_name, middle_name=middle_name, last_name=last_name)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _create_schedule(db, user, time_in=time(22, 0), time_out=time(6, 0), shift_type="night",
                     grace=15, site_id=None, effective_date=date(2024, 1, 1), work_days=None):
    schedule = EmployeeSchedule(
        user_id=user.id,
        site_id=site_id,
        shift_type=shift_type,
        scheduled_time_in=time_in,
        scheduled_time_out=time_out,
        work_days=work_days or ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"],
        grace_period_minutes=grace,
        effective_date=effective_date,
        is_active=True,
    )
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    return schedule


@pytest.fixture()
def create_site(db):
    return lambda name: _create_site(db, name)


@pytest.fixture()
def create_user(db):
    return lambda first_name, last_name, middle_name=None: _create_user(db, first_name, last_name, middle_name)


@pytest.fixture()
def create_schedule(db):
    return lambda user, **kwargs: _create_schedule(db, user, **kwargs)


@pytest.fixture(autouse=True)
def fixed_today(monkeypatch):
    # GBRO 與到期計算以「今天」為基準，測試固定在 2024-03-10
    today = date(2024, 3, 10)
    monkeypatch.setattr("app.services.attendance_point_service.get_today", lambda *args: today)
    return today
