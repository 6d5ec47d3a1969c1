# Shared fixtures for the approvalflow test suite

from pathlib import Path

import pytest

from approvalflow import ApprovalService, ProcessEngine

RESOURCES = Path(__file__).parent / "resources"

TRAVEL_BPMN = RESOURCES / "travel.bpmn20.xml"
LEAVE_BPMN = RESOURCES / "leave.bpmn20.xml"
REVIEW_BPMN = RESOURCES / "review.bpmn20.xml"


@pytest.fixture
def engine(tmp_path):
    """Persistent engine with the travel, leave and review processes deployed."""
    engine = ProcessEngine(str(tmp_path / "engine"))
    engine.deploy(
        [
            TRAVEL_BPMN,
            ("travel.png", b""),
            LEAVE_BPMN,
            REVIEW_BPMN,
        ],
        "approval processes",
    )
    return engine


@pytest.fixture
def service(engine):
    return ApprovalService(engine)


@pytest.fixture
def travel_form():
    return {"user": "ZhangSan", "days": 6}
