from __future__ import annotations

import io
import os
import pathlib
import sys
import tempfile
from typing import Iterator

import pytest

ROOT_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

_DB_DIR = tempfile.mkdtemp(prefix="proposal-copilot-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ["OPENAI_API_KEY"] = ""
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_REGION", "us-east-1")

import boto3  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from openpyxl import Workbook  # noqa: E402

from proposal_api.config import settings  # noqa: E402
from proposal_api.db.session import SessionLocal, init_db  # noqa: E402
from proposal_api.main import app  # noqa: E402
from proposal_api.models import Company  # noqa: E402
from proposal_api.models.base import Base  # noqa: E402

init_db()


@pytest.fixture(scope="session")
def client() -> Iterator[TestClient]:
    """Provide a FastAPI TestClient instance."""
    with TestClient(app) as _client:
        yield _client


@pytest.fixture(autouse=True)
def cleanup_database() -> Iterator[None]:
    """Empty every table after each test to keep isolation."""
    yield
    with SessionLocal() as session:
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()


@pytest.fixture()
def company() -> Company:
    with SessionLocal() as session:
        company = Company(name="Constructora Andina SRL")
        session.add(company)
        session.commit()
        return company


@pytest.fixture()
def mock_s3():
    from moto import mock_aws

    with mock_aws():
        s3 = boto3.client("s3", region_name=settings.aws.region)
        bucket = "test-proposal-bucket"
        s3.create_bucket(Bucket=bucket)
        previous_bucket = settings.aws.s3_bucket
        settings.aws.s3_bucket = bucket
        try:
            yield s3
        finally:
            settings.aws.s3_bucket = previous_bucket


def build_workbook(sheets: dict[str, list[list[object]]]) -> bytes:
    workbook = Workbook()
    workbook.remove(workbook.active)
    for name, rows in sheets.items():
        worksheet = workbook.create_sheet(title=name)
        for row in rows:
            worksheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture()
def two_sheet_workbook() -> bytes:
    return build_workbook(
        {
            "Precios": [
                ["Item", "Precio Bs"],
                ["Cemento", 75],
                ["Arena", 120],
            ],
            "Personal": [
                ["Cargo", "Cantidad"],
                ["Ingeniero", 2],
                ["Albañil", 8],
            ],
        }
    )


@pytest.fixture()
def workbook_factory():
    return build_workbook
